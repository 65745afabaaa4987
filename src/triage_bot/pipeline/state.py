"""State definition for the patch-integration graph."""

import operator
from typing import Annotated, TypedDict

from triage_bot.models import (
    BranchRef,
    DispatchDecision,
    FileOutcome,
    FilePatch,
    PatchedFile,
    PatchResult,
    RunOutcome,
)


class PipelineState(TypedDict):
    """State for one patch-integration run.

    ``errors`` accumulates across nodes; every other field is overwritten.
    """

    # Input
    patch_result: PatchResult
    base_branch: str

    # Dispatch
    decision: DispatchDecision | None
    changes: list[FilePatch] | list[PatchedFile]

    # Remote mutation
    base_sha: str | None
    branch: BranchRef | None
    file_outcomes: list[FileOutcome]
    pr_url: str | None

    # Failure bookkeeping: which step stopped the run and why
    failed_step: str | None
    failure_message: str | None

    # Result
    outcome: RunOutcome | None
    comment_posted: bool

    errors: Annotated[list[str], operator.add]


def make_initial_state(patch_result: PatchResult, base_branch: str = "main") -> PipelineState:
    """Create the initial state for one run.

    Args:
        patch_result: The delivered patch result.
        base_branch: Branch the work branch is cut from and the PR targets.

    Returns:
        PipelineState dict with all fields initialised to defaults.
    """
    return {
        "patch_result": patch_result,
        "base_branch": base_branch,
        "decision": None,
        "changes": [],
        "base_sha": None,
        "branch": None,
        "file_outcomes": [],
        "pr_url": None,
        "failed_step": None,
        "failure_message": None,
        "outcome": None,
        "comment_posted": False,
        "errors": [],
    }
