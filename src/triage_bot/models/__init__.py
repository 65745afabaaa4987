"""Data models for the triage bot."""

from triage_bot.models.diff_models import NULL_DEVICE, FilePatch, Hunk, HunkLine, LineKind
from triage_bot.models.report_models import (
    AckDecision,
    BranchRef,
    Decision,
    DispatchDecision,
    FileOutcome,
    RemoteFileHandle,
    RunOutcome,
    RunReport,
)
from triage_bot.models.task_models import (
    BuildAttempt,
    BuildResult,
    LastPatchResult,
    PatchedFile,
    PatchKind,
    PatchResult,
    TaskInfo,
)

__all__ = [
    "AckDecision",
    "BranchRef",
    "BuildAttempt",
    "BuildResult",
    "Decision",
    "DispatchDecision",
    "FileOutcome",
    "FilePatch",
    "Hunk",
    "HunkLine",
    "LastPatchResult",
    "LineKind",
    "NULL_DEVICE",
    "PatchKind",
    "PatchResult",
    "PatchedFile",
    "RemoteFileHandle",
    "RunOutcome",
    "RunReport",
    "TaskInfo",
]
