"""Task and patch-result models exchanged with the task transport."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class TaskInfo(BaseModel):
    """Identifying data for one unit of work, tied to a single issue."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    repo_owner: str
    repo_name: str
    issue_number: int
    issue_title: str = ""
    installation_id: int
    repo_full_name: str | None = None  # "{owner}/{name}" as sent by the ingress
    problem_statement: str | None = None


class PatchKind(str, Enum):
    """Which representation of the change set is authoritative."""

    UNIFIED_DIFF = "unified_diff"
    PATCHED_FILES = "patched_files"


class PatchedFile(BaseModel):
    """A pre-applied file change carrying the full resulting content."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    source_file_path: str = Field(alias="sourceFilePath")
    target_file_path: str = Field(alias="targetFilePath")
    target_file_content: str = Field(alias="targetFileContent")


class LastPatchResult(BaseModel):
    """Outcome of the upstream patch computation."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    kind: PatchKind
    unified_diff: str | None = Field(default=None, alias="unifiedDiff")
    patched_files: list[PatchedFile] = Field(default_factory=list, alias="patchedFiles")
    error: str = ""

    @model_validator(mode="before")
    @classmethod
    def _migrate_untagged(cls, data):
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if data.get("error") is None:
            data["error"] = ""
        for key in ("patchedFiles", "patched_files"):
            if key in data and data[key] is None:
                del data[key]
        if data.get("kind"):
            return data
        # Older producers omit the discriminant; infer it from non-empty content.
        patched_files = data.get("patchedFiles", data.get("patched_files"))
        unified_diff = data.get("unifiedDiff", data.get("unified_diff"))
        if patched_files:
            data["kind"] = PatchKind.PATCHED_FILES
        elif unified_diff is not None:
            data["kind"] = PatchKind.UNIFIED_DIFF
        else:
            data["kind"] = PatchKind.PATCHED_FILES
        return data

    @model_validator(mode="after")
    def _check_single_representation(self):
        # A failed upstream run is reported whatever it carries.
        if self.error.strip():
            return self
        if self.kind == PatchKind.UNIFIED_DIFF and self.patched_files:
            raise ValueError("unified_diff result must not also carry patched_files")
        if self.kind == PatchKind.PATCHED_FILES and self.unified_diff:
            raise ValueError("patched_files result must not also carry unified_diff")
        return self


class PatchResult(BaseModel):
    """Message delivered by the patch-generation service."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    task_info: TaskInfo = Field(alias="taskInfo")
    last_patch_result: LastPatchResult = Field(alias="lastPatchResult")

    @model_validator(mode="before")
    @classmethod
    def _migrate_issue_info(cls, data):
        if isinstance(data, dict) and "issueInfo" in data and "taskInfo" not in data:
            data = dict(data)
            data["taskInfo"] = data.pop("issueInfo")
        return data


class BuildAttempt(BaseModel):
    """One Dockerfile generation attempt reported by the build service."""

    model_config = ConfigDict(frozen=True)

    docker_file: str = ""
    build_success: bool = False
    error_logs: str = ""


class BuildResult(BaseModel):
    """Message delivered by the container build service."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    task_info: TaskInfo = Field(alias="taskInfo")
    history: list[BuildAttempt] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _migrate_issue_info(cls, data):
        if isinstance(data, dict) and "issueInfo" in data and "taskInfo" not in data:
            data = dict(data)
            data["taskInfo"] = data.pop("issueInfo")
        return data
