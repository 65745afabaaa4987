"""Exceptions for diff parsing and patch application."""


class PatchError(Exception):
    """Base exception for all patching operations."""


class ParseError(PatchError):
    """Raised when unified-diff text is malformed."""


class ApplyError(PatchError):
    """Raised when a hunk does not match the original content exactly."""

    def __init__(
        self,
        message: str,
        *,
        path: str | None = None,
        hunk_index: int | None = None,
        line_number: int | None = None,
        expected: str | None = None,
        found: str | None = None,
    ) -> None:
        super().__init__(message)
        self.path = path
        self.hunk_index = hunk_index
        self.line_number = line_number
        self.expected = expected
        self.found = found
