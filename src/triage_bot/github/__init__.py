"""Repository-hosting API client."""

from triage_bot.github.client import GitHubClient, encode_content
from triage_bot.github.exceptions import (
    BranchCreateError,
    CommentPostError,
    ConflictError,
    ContentFetchError,
    FileWriteError,
    GitHubError,
    PRCreateError,
    RefNotFoundError,
)

__all__ = [
    "BranchCreateError",
    "CommentPostError",
    "ConflictError",
    "ContentFetchError",
    "FileWriteError",
    "GitHubClient",
    "GitHubError",
    "PRCreateError",
    "RefNotFoundError",
    "encode_content",
]
