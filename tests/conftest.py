from unittest.mock import MagicMock

import pytest

from triage_bot.github import ContentFetchError
from triage_bot.models import PatchResult, RemoteFileHandle, TaskInfo


TASK_INFO = {
    "repo_owner": "octo",
    "repo_name": "widgets",
    "issue_number": 42,
    "issue_title": "Crash on empty input",
    "installation_id": 1234,
}


def make_patch_result(
    unified_diff: str | None = None,
    patched_files: list[dict] | None = None,
    error: str = "",
) -> PatchResult:
    """Build a PatchResult from wire-format (camelCase) fields."""
    last: dict = {"error": error}
    if unified_diff is not None:
        last["unifiedDiff"] = unified_diff
    if patched_files is not None:
        last["patchedFiles"] = patched_files
    return PatchResult.model_validate({"taskInfo": TASK_INFO, "lastPatchResult": last})


def make_diff(path: str, old_lines: list[str], new_lines: list[str], start: int = 1) -> str:
    """Single-hunk diff replacing ``old_lines`` with ``new_lines`` at ``start``."""
    body = [f"-{line}" for line in old_lines] + [f"+{line}" for line in new_lines]
    return "\n".join(
        [
            f"--- a/{path}",
            f"+++ b/{path}",
            f"@@ -{start},{len(old_lines)} +{start},{len(new_lines)} @@",
            *body,
        ]
    ) + "\n"


@pytest.fixture
def task_info():
    return TaskInfo(**TASK_INFO)


@pytest.fixture
def repo_files():
    """Remote file tree of the work branch: path -> (content, blob sha)."""
    return {
        "a.py": ("a\nb\nc\n", "sha-a"),
        "b.py": ("x = 1\n", "sha-b"),
    }


@pytest.fixture
def mock_client(repo_files):
    """MagicMock API client backed by ``repo_files``."""
    client = MagicMock()
    client.get_ref.return_value = "base-sha"
    client.create_pull_request.return_value = "https://github.com/octo/widgets/pull/7"

    def get_content(owner, repo, path, ref):
        if path not in repo_files:
            raise ContentFetchError(f"{path} not found", status_code=404)
        content, sha = repo_files[path]
        return RemoteFileHandle(path=path, blob_sha=sha, content=content)

    def find_blob_sha(owner, repo, path, ref):
        entry = repo_files.get(path)
        return entry[1] if entry else None

    def create_or_update_file(owner, repo, path, content_base64, message, sha, branch):
        return f"commit-{path}"

    client.get_content.side_effect = get_content
    client.find_blob_sha.side_effect = find_blob_sha
    client.create_or_update_file.side_effect = create_or_update_file
    return client
