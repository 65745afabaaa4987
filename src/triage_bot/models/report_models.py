"""Models describing repository mutations and pipeline outcomes."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class BranchRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str       # "feature-{issue_number}-{uuid4}"
    base_sha: str   # Commit the branch was cut from


class RemoteFileHandle(BaseModel):
    """Content and blob sha read right before a conditional write."""

    model_config = ConfigDict(frozen=True)

    path: str
    blob_sha: str
    content: str


class FileOutcome(BaseModel):
    model_config = ConfigDict(frozen=False)

    path: str
    succeeded: bool
    error: str | None = None
    error_type: str | None = None   # Exception class name, e.g. "ConflictError"
    commit_sha: str | None = None
    added: int = 0
    removed: int = 0


class Decision(str, Enum):
    GENERATE_PULL_REQUEST = "generate_pull_request"
    REPORT_FAILURE = "report_failure"


class DispatchDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: Decision
    reason: str = ""
    change_count: int = 0
    no_changes: bool = False  # Neutral "nothing to do", not an upstream error


class RunOutcome(str, Enum):
    PULL_REQUEST_OPENED = "pull_request_opened"
    REPORTED_FAILURE = "reported_failure"
    NO_CHANGES = "no_changes"


class RunReport(BaseModel):
    """Summary of one pipeline run, returned to the caller and the CLI."""

    model_config = ConfigDict(frozen=False)

    outcome: RunOutcome
    issue_number: int
    branch_name: str | None = None
    pr_url: str | None = None
    file_outcomes: list[FileOutcome] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    comment_posted: bool = False
    finished_at: datetime = Field(default_factory=datetime.now)

    @property
    def failed_files(self) -> list[FileOutcome]:
        return [outcome for outcome in self.file_outcomes if not outcome.succeeded]


class AckDecision(str, Enum):
    """What the transport should do with the delivered message."""

    ACK = "ack"
    NACK = "nack"
