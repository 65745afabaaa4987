"""Models for representing parsed unified diffs."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

NULL_DEVICE = "/dev/null"


class LineKind(str, Enum):
    CONTEXT = "context"
    ADDED = "added"
    REMOVED = "removed"


class HunkLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: LineKind
    text: str  # Line content without the leading marker or newline
    no_newline: bool = False  # Followed by "\ No newline at end of file"


class Hunk(BaseModel):
    """A contiguous block of changed lines within one file."""

    model_config = ConfigDict(frozen=True)

    old_start: int  # 1-based; 0 when the old range is empty
    old_length: int
    new_start: int
    new_length: int
    lines: list[HunkLine] = Field(default_factory=list)

    @property
    def old_lines(self) -> list[HunkLine]:
        """Context and removed lines, i.e. what the original must contain."""
        return [line for line in self.lines if line.kind != LineKind.ADDED]

    @property
    def new_lines(self) -> list[HunkLine]:
        return [line for line in self.lines if line.kind != LineKind.REMOVED]

    @property
    def added_count(self) -> int:
        return sum(1 for line in self.lines if line.kind == LineKind.ADDED)

    @property
    def removed_count(self) -> int:
        return sum(1 for line in self.lines if line.kind == LineKind.REMOVED)


class FilePatch(BaseModel):
    """All hunks for a single file, in diff order."""

    model_config = ConfigDict(frozen=True)

    old_file_name: str  # Repository path with "a/" stripped, or /dev/null
    new_file_name: str  # Repository path with "b/" stripped, or /dev/null
    hunks: list[Hunk] = Field(default_factory=list)

    @property
    def is_new_file(self) -> bool:
        return self.old_file_name == NULL_DEVICE

    @property
    def is_deleted_file(self) -> bool:
        return self.new_file_name == NULL_DEVICE

    @property
    def source_path(self) -> str | None:
        return None if self.is_new_file else self.old_file_name

    @property
    def target_path(self) -> str:
        """Path the patched content is written to."""
        return self.old_file_name if self.is_deleted_file else self.new_file_name

    @property
    def added_count(self) -> int:
        return sum(hunk.added_count for hunk in self.hunks)

    @property
    def removed_count(self) -> int:
        return sum(hunk.removed_count for hunk in self.hunks)
