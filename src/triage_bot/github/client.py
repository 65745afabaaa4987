"""Thin REST client for the repository-hosting API (GitHub v3)."""

import base64
import binascii
from urllib.parse import quote

import httpx

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
from triage_bot.logger import get_logger
from triage_bot.models import RemoteFileHandle

logger = get_logger(__name__)

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_TIMEOUT = 30.0
API_VERSION = "2022-11-28"

# Status codes the contents API uses for a stale or missing blob sha
_CONFLICT_STATUSES = frozenset({409, 412, 422})


class GitHubClient:
    """Performs the remote operations the patch pipeline needs.

    No request is retried; every non-2xx answer is raised as the
    step-specific exception from ``triage_bot.github.exceptions``.
    """

    def __init__(
        self,
        token: str | None,
        base_url: str = DEFAULT_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
        committer_name: str | None = None,
        committer_email: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
            "User-Agent": "triage-bot",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._http = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )
        self.committer: dict[str, str] | None = None
        if committer_name and committer_email:
            self.committer = {"name": committer_name, "email": committer_email}

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "GitHubClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Refs
    # ------------------------------------------------------------------

    def get_ref(self, owner: str, repo: str, branch: str) -> str:
        """Return the head commit sha of ``branch``.

        Raises:
            RefNotFoundError: If the branch does not exist.
            GitHubError: On any other failure.
        """
        url = f"/repos/{owner}/{repo}/git/ref/heads/{quote(branch, safe='/')}"
        response = self._send("GET", url, GitHubError)
        if response.status_code in (404, 409):
            raise RefNotFoundError(
                f"ref 'heads/{branch}' not found in {owner}/{repo}",
                status_code=response.status_code,
            )
        self._raise_for_status(response, GitHubError, f"reading ref 'heads/{branch}'")
        return response.json()["object"]["sha"]

    def create_ref(self, owner: str, repo: str, new_branch_name: str, sha: str) -> None:
        """Create ``refs/heads/{new_branch_name}`` pointing at ``sha``."""
        response = self._send(
            "POST",
            f"/repos/{owner}/{repo}/git/refs",
            BranchCreateError,
            json={"ref": f"refs/heads/{new_branch_name}", "sha": sha},
        )
        self._raise_for_status(response, BranchCreateError, f"creating branch {new_branch_name}")
        logger.info("Created branch %s at %s in %s/%s", new_branch_name, sha, owner, repo)

    # ------------------------------------------------------------------
    # Contents
    # ------------------------------------------------------------------

    def get_content(self, owner: str, repo: str, path: str, ref: str) -> RemoteFileHandle:
        """Read a file's decoded text and blob sha at ``ref``."""
        response = self._send(
            "GET",
            f"/repos/{owner}/{repo}/contents/{quote(path)}",
            ContentFetchError,
            params={"ref": ref},
        )
        self._raise_for_status(response, ContentFetchError, f"reading {path}")
        payload = response.json()
        if isinstance(payload, list) or payload.get("type") != "file":
            raise ContentFetchError(f"{path} is not a regular file")
        if payload.get("encoding") != "base64":
            raise ContentFetchError(
                f"{path}: unsupported content encoding {payload.get('encoding')!r}"
            )
        try:
            content = base64.b64decode(payload.get("content", "")).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as exc:
            raise ContentFetchError(f"{path}: content is not UTF-8 text: {exc}") from exc
        return RemoteFileHandle(path=path, blob_sha=payload["sha"], content=content)

    def find_blob_sha(self, owner: str, repo: str, path: str, ref: str) -> str | None:
        """Return the blob sha of ``path`` at ``ref``, or None if it does not exist."""
        response = self._send(
            "GET",
            f"/repos/{owner}/{repo}/contents/{quote(path)}",
            ContentFetchError,
            params={"ref": ref},
        )
        if response.status_code == 404:
            return None
        self._raise_for_status(response, ContentFetchError, f"reading {path}")
        payload = response.json()
        if isinstance(payload, list):
            raise ContentFetchError(f"{path} is a directory")
        return payload["sha"]

    def create_or_update_file(
        self,
        owner: str,
        repo: str,
        path: str,
        content_base64: str,
        message: str,
        sha: str | None,
        branch: str,
    ) -> str:
        """Write a file on ``branch``, conditioned on ``sha`` when it exists.

        Returns:
            Sha of the commit the write produced.

        Raises:
            ConflictError: If ``sha`` is stale or missing for an existing file.
            FileWriteError: On any other rejection.
        """
        body = {"message": message, "content": content_base64, "branch": branch}
        if sha is not None:
            body["sha"] = sha
        if self.committer is not None:
            body["committer"] = self.committer
        response = self._send(
            "PUT", f"/repos/{owner}/{repo}/contents/{quote(path)}", FileWriteError, json=body
        )
        if response.status_code in _CONFLICT_STATUSES:
            raise ConflictError(
                f"{path}: blob sha {sha} is stale ({_error_message(response)})",
                status_code=response.status_code,
            )
        self._raise_for_status(response, FileWriteError, f"writing {path}")
        return response.json()["commit"]["sha"]

    # ------------------------------------------------------------------
    # Pull requests and issues
    # ------------------------------------------------------------------

    def create_pull_request(
        self, owner: str, repo: str, title: str, head: str, base: str, body: str
    ) -> str:
        """Open a pull request and return its HTML URL."""
        response = self._send(
            "POST",
            f"/repos/{owner}/{repo}/pulls",
            PRCreateError,
            json={"title": title, "head": head, "base": base, "body": body},
        )
        self._raise_for_status(response, PRCreateError, "creating pull request")
        return response.json()["html_url"]

    def create_issue_comment(self, owner: str, repo: str, issue_number: int, body: str) -> None:
        response = self._send(
            "POST",
            f"/repos/{owner}/{repo}/issues/{issue_number}/comments",
            CommentPostError,
            json={"body": body},
        )
        self._raise_for_status(response, CommentPostError, f"commenting on #{issue_number}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _send(
        self, method: str, url: str, error_cls: type[GitHubError], **kwargs
    ) -> httpx.Response:
        logger.debug("%s %s", method, url)
        try:
            return self._http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise error_cls(f"{method} {url} failed: {exc}") from exc

    @staticmethod
    def _raise_for_status(
        response: httpx.Response, error_cls: type[GitHubError], action: str
    ) -> None:
        if response.is_success:
            return
        raise error_cls(
            f"Error while {action}: status {response.status_code}: {_error_message(response)}",
            status_code=response.status_code,
        )


def encode_content(text: str) -> str:
    """Base64-encode file text the way the contents API expects."""
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return response.text
