"""Exceptions for repository-hosting API operations.

Each remote step of the pipeline has its own exception so callers can tell
fatal setup failures (ref lookup, branch creation) from per-file failures.
"""


class GitHubError(Exception):
    """Base exception for all repository-hosting API operations."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RefNotFoundError(GitHubError):
    """Raised when the base branch ref cannot be resolved."""


class BranchCreateError(GitHubError):
    """Raised when the work branch cannot be created."""


class ContentFetchError(GitHubError):
    """Raised when a file's content or blob sha cannot be read."""


class FileWriteError(GitHubError):
    """Raised when a file write is rejected."""


class ConflictError(FileWriteError):
    """Raised when a conditional write presents a stale blob sha."""


class PRCreateError(GitHubError):
    """Raised when the pull request cannot be opened."""


class CommentPostError(GitHubError):
    """Raised when an issue comment cannot be posted."""
