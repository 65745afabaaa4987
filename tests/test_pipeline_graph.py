"""Tests for the patch-integration graph: nodes, routers and full runs."""

import threading
import time

import pytest

from triage_bot.github import (
    BranchCreateError,
    ConflictError,
    ContentFetchError,
    PRCreateError,
    RefNotFoundError,
    encode_content,
)
from triage_bot.models import (
    BranchRef,
    Decision,
    DispatchDecision,
    FileOutcome,
    RunOutcome,
)
from triage_bot.patching import parse
from triage_bot.pipeline.graph import (
    STEP_APPLY_FILES,
    STEP_PARSE,
    STEP_UPSTREAM,
    build_graph,
    commit_message,
    dispatch_node,
    gate_file_outcomes,
    integrate_file,
    make_apply_files_node,
    make_branch_name,
    pull_request_title,
    route_after_dispatch,
    route_on_failure,
)
from triage_bot.pipeline.state import make_initial_state
from conftest import make_diff, make_patch_result

DIFF_A = make_diff("a.py", ["c"], ["d"], start=3)
DIFF_B = make_diff("b.py", ["x = 1"], ["x = 2"])


def run(client, patch_result, max_concurrent_writes=4):
    graph = build_graph(client, max_concurrent_writes=max_concurrent_writes)
    return graph.invoke(make_initial_state(patch_result))


def posted_comment(client) -> str:
    client.create_issue_comment.assert_called_once()
    return client.create_issue_comment.call_args.args[3]


class TestHelpers:
    def test_branch_names_are_unique(self):
        first = make_branch_name(42)
        second = make_branch_name(42)
        assert first.startswith("feature-42-")
        assert first != second

    def test_commit_message(self, task_info):
        assert commit_message(task_info) == "Fix for the issue #42"

    def test_pull_request_title(self, task_info):
        assert pull_request_title(task_info) == "Fix for issue #42: Crash on empty input"


class TestIntegrateFile:
    def test_patches_and_writes_with_blob_sha(self, mock_client, task_info):
        change = parse(DIFF_A)[0]
        outcome = integrate_file(mock_client, task_info, "feature-42-x", change, "msg")

        assert outcome.succeeded
        assert outcome.commit_sha == "commit-a.py"
        assert (outcome.added, outcome.removed) == (1, 1)
        args = mock_client.create_or_update_file.call_args.args
        assert args[2] == "a.py"
        assert args[5] == "sha-a"
        assert args[6] == "feature-42-x"
        mock_client.get_content.assert_called_once_with("octo", "widgets", "a.py", "feature-42-x")

    def test_new_file_skips_fetch(self, mock_client, task_info):
        diff = "--- /dev/null\n+++ b/new.py\n@@ -0,0 +1,1 @@\n+print(1)\n"
        outcome = integrate_file(mock_client, task_info, "br", parse(diff)[0], "msg")

        assert outcome.succeeded
        mock_client.get_content.assert_not_called()
        assert mock_client.create_or_update_file.call_args.args[5] is None

    def test_mismatch_is_a_failed_outcome(self, mock_client, task_info):
        change = parse(make_diff("a.py", ["zzz"], ["d"], start=3))[0]
        outcome = integrate_file(mock_client, task_info, "br", change, "msg")

        assert not outcome.succeeded
        assert outcome.error_type == "ApplyError"
        mock_client.create_or_update_file.assert_not_called()

    def test_missing_file_is_a_failed_outcome(self, mock_client, task_info):
        change = parse(make_diff("gone.py", ["a"], ["b"]))[0]
        outcome = integrate_file(mock_client, task_info, "br", change, "msg")

        assert not outcome.succeeded
        assert outcome.error_type == "ContentFetchError"

    def test_patched_file_updates_existing(self, mock_client, task_info):
        change = make_patch_result(patched_files=[{
            "sourceFilePath": "b.py", "targetFilePath": "b.py", "targetFileContent": "x = 2\n",
        }]).last_patch_result.patched_files[0]
        outcome = integrate_file(mock_client, task_info, "br", change, "msg")

        assert outcome.succeeded
        assert (outcome.added, outcome.removed) == (1, 1)
        assert mock_client.create_or_update_file.call_args.args[5] == "sha-b"

    def test_patched_file_creates_missing(self, mock_client, task_info):
        change = make_patch_result(patched_files=[{
            "sourceFilePath": "c.py", "targetFilePath": "c.py", "targetFileContent": "y\n",
        }]).last_patch_result.patched_files[0]
        outcome = integrate_file(mock_client, task_info, "br", change, "msg")

        assert outcome.succeeded
        assert (outcome.added, outcome.removed) == (1, 0)
        assert mock_client.create_or_update_file.call_args.args[5] is None

    def test_patched_file_fetch_error_other_than_404(self, mock_client, task_info):
        mock_client.get_content.side_effect = ContentFetchError("server error", status_code=500)
        change = make_patch_result(patched_files=[{
            "sourceFilePath": "b.py", "targetFilePath": "b.py", "targetFileContent": "x",
        }]).last_patch_result.patched_files[0]
        outcome = integrate_file(mock_client, task_info, "br", change, "msg")

        assert not outcome.succeeded
        mock_client.create_or_update_file.assert_not_called()


class TestDispatchNode:
    def test_generate_loads_changes(self):
        state = make_initial_state(make_patch_result(unified_diff=DIFF_A + DIFF_B))
        update = dispatch_node(state)
        assert update["decision"].action == Decision.GENERATE_PULL_REQUEST
        assert len(update["changes"]) == 2

    def test_upstream_error_records_step(self):
        update = dispatch_node(make_initial_state(make_patch_result(error="timeout")))
        assert update["failed_step"] == STEP_UPSTREAM
        assert update["errors"] == ["patch generation: timeout"]

    def test_parse_error_records_step(self):
        update = dispatch_node(make_initial_state(make_patch_result(unified_diff="@@ -1 +1 @@\n")))
        assert update["failed_step"] == STEP_PARSE

    def test_no_changes_is_not_a_failure(self):
        update = dispatch_node(make_initial_state(make_patch_result(unified_diff="")))
        assert update["decision"].no_changes
        assert "failed_step" not in update


class TestRouters:
    def test_route_after_dispatch(self):
        state = make_initial_state(make_patch_result())
        state["decision"] = DispatchDecision(action=Decision.GENERATE_PULL_REQUEST)
        assert route_after_dispatch(state) == "integrate"
        state["decision"] = DispatchDecision(action=Decision.REPORT_FAILURE)
        assert route_after_dispatch(state) == "report"

    def test_route_on_failure(self):
        state = make_initial_state(make_patch_result())
        assert route_on_failure(state) == "continue"
        state["failed_step"] = "create branch"
        assert route_on_failure(state) == "report"

    @pytest.mark.parametrize(
        "flags, expected",
        [
            ([True, True, True], "create_pull_request"),
            ([True, False, True], "report"),
            ([False], "report"),
            ([], "report"),
        ],
    )
    def test_gate_file_outcomes(self, flags, expected):
        state = make_initial_state(make_patch_result())
        state["file_outcomes"] = [
            FileOutcome(path=f"f{i}.py", succeeded=flag) for i, flag in enumerate(flags)
        ]
        assert gate_file_outcomes(state) == expected


class TestApplyFilesNode:
    def _state(self, diff):
        patch_result = make_patch_result(unified_diff=diff)
        state = make_initial_state(patch_result)
        state["changes"] = parse(diff)
        state["branch"] = BranchRef(name="feature-42-x", base_sha="base-sha")
        return state

    def test_waits_for_every_file(self, mock_client, repo_files):
        paths = [f"f{i}.py" for i in range(6)]
        for path in paths:
            repo_files[path] = ("old\n", f"sha-{path}")
        diff = "".join(make_diff(path, ["old"], ["new"]) for path in paths)

        def slow_write(owner, repo, path, content, message, sha, branch):
            time.sleep(0.01)
            return f"commit-{path}"

        mock_client.create_or_update_file.side_effect = slow_write
        update = make_apply_files_node(mock_client, 3)(self._state(diff))

        assert [o.path for o in update["file_outcomes"]] == paths
        assert all(o.succeeded for o in update["file_outcomes"])
        assert "failed_step" not in update

    def test_writes_run_concurrently(self, mock_client, repo_files):
        paths = ["f0.py", "f1.py"]
        for path in paths:
            repo_files[path] = ("old\n", "sha")
        both_started = threading.Barrier(2, timeout=5)

        def write(owner, repo, path, content, message, sha, branch):
            both_started.wait()
            return "c"

        mock_client.create_or_update_file.side_effect = write
        diff = "".join(make_diff(path, ["old"], ["new"]) for path in paths)
        update = make_apply_files_node(mock_client, 2)(self._state(diff))

        assert all(o.succeeded for o in update["file_outcomes"])

    def test_one_failure_does_not_cancel_others(self, mock_client):
        def write(owner, repo, path, content, message, sha, branch):
            if path == "a.py":
                raise ConflictError("sha mismatch", status_code=409)
            return f"commit-{path}"

        mock_client.create_or_update_file.side_effect = write
        update = make_apply_files_node(mock_client)(self._state(DIFF_A + DIFF_B))

        by_path = {o.path: o for o in update["file_outcomes"]}
        assert not by_path["a.py"].succeeded
        assert by_path["b.py"].succeeded
        assert update["failed_step"] == STEP_APPLY_FILES

    def test_unexpected_exception_becomes_failed_outcome(self, mock_client):
        mock_client.create_or_update_file.side_effect = RuntimeError("boom")
        update = make_apply_files_node(mock_client)(self._state(DIFF_B))

        outcome = update["file_outcomes"][0]
        assert not outcome.succeeded
        assert outcome.error_type == "RuntimeError"


class TestGraphRuns:
    def test_successful_run_opens_pull_request(self, mock_client):
        state = run(mock_client, make_patch_result(unified_diff=DIFF_A + DIFF_B))

        assert state["outcome"] == RunOutcome.PULL_REQUEST_OPENED
        assert state["pr_url"] == "https://github.com/octo/widgets/pull/7"
        assert state["errors"] == []
        mock_client.get_ref.assert_called_once_with("octo", "widgets", "main")
        owner, repo, branch_name, sha = mock_client.create_ref.call_args.args
        assert branch_name.startswith("feature-42-")
        assert sha == "base-sha"
        assert mock_client.create_or_update_file.call_count == 2
        pr_args = mock_client.create_pull_request.call_args.args
        assert pr_args[3] == branch_name
        assert pr_args[4] == "main"
        mock_client.create_issue_comment.assert_not_called()

    def test_upstream_error_reports_without_remote_mutation(self, mock_client):
        """error='timeout' with no files: one comment, no branch."""
        state = run(mock_client, make_patch_result(patched_files=[], error="timeout"))

        assert state["outcome"] == RunOutcome.REPORTED_FAILURE
        assert "timeout" in posted_comment(mock_client)
        mock_client.get_ref.assert_not_called()
        mock_client.create_ref.assert_not_called()

    def test_missing_base_ref_stops_before_branch(self, mock_client):
        mock_client.get_ref.side_effect = RefNotFoundError(
            "Error while resolving ref heads/main: status 404: Not Found", status_code=404
        )
        state = run(mock_client, make_patch_result(unified_diff=DIFF_A))

        assert state["outcome"] == RunOutcome.REPORTED_FAILURE
        assert state["branch"] is None
        mock_client.create_ref.assert_not_called()
        mock_client.create_or_update_file.assert_not_called()
        assert "heads/main" in posted_comment(mock_client)

    def test_branch_create_failure_stops_before_writes(self, mock_client):
        mock_client.create_ref.side_effect = BranchCreateError("already exists", status_code=422)
        run(mock_client, make_patch_result(unified_diff=DIFF_A))

        mock_client.create_or_update_file.assert_not_called()
        assert "create branch" in posted_comment(mock_client)

    def test_conflict_on_one_file_blocks_pull_request(self, mock_client):
        def write(owner, repo, path, content, message, sha, branch):
            if path == "b.py":
                raise ConflictError("b.py does not match sha-b", status_code=409)
            return f"commit-{path}"

        mock_client.create_or_update_file.side_effect = write
        state = run(mock_client, make_patch_result(unified_diff=DIFF_A + DIFF_B))

        assert state["outcome"] == RunOutcome.REPORTED_FAILURE
        mock_client.create_pull_request.assert_not_called()
        written = [c.args[2] for c in mock_client.create_or_update_file.call_args_list]
        assert sorted(written) == ["a.py", "b.py"]

        body = posted_comment(mock_client)
        failed_section, _, committed_section = body.partition("**Files already committed:**")
        assert "`b.py` (ConflictError)" in failed_section
        assert "a.py" not in failed_section
        assert "`a.py`" in committed_section
        assert state["branch"].name in body

    def test_parse_error_reports_without_remote_calls(self, mock_client):
        state = run(mock_client, make_patch_result(unified_diff="--- a/x\n+++ b/x\n-a\n"))

        assert state["outcome"] == RunOutcome.REPORTED_FAILURE
        mock_client.get_ref.assert_not_called()
        assert "could not be parsed" in posted_comment(mock_client)

    def test_no_changes(self, mock_client):
        state = run(mock_client, make_patch_result(unified_diff=""))

        assert state["outcome"] == RunOutcome.NO_CHANGES
        assert "produced no changes" in posted_comment(mock_client)
        mock_client.get_ref.assert_not_called()

    def test_pull_request_failure_is_reported(self, mock_client):
        mock_client.create_pull_request.side_effect = PRCreateError("validation failed", 422)
        state = run(mock_client, make_patch_result(unified_diff=DIFF_A))

        assert state["outcome"] == RunOutcome.REPORTED_FAILURE
        assert state["pr_url"] is None
        assert "validation failed" in posted_comment(mock_client)

    def test_comment_failure_is_recorded(self, mock_client):
        from triage_bot.github import CommentPostError

        mock_client.create_issue_comment.side_effect = CommentPostError("forbidden", 403)
        state = run(mock_client, make_patch_result(error="timeout"))

        assert state["comment_posted"] is False
        assert mock_client.create_issue_comment.call_count == 1

    def test_serialized_writes(self, mock_client):
        state = run(mock_client, make_patch_result(unified_diff=DIFF_A + DIFF_B),
                    max_concurrent_writes=1)
        assert state["outcome"] == RunOutcome.PULL_REQUEST_OPENED


class TestIntegrateRenamedFile:
    RENAME_DIFF = "--- a/old.py\n+++ b/new.py\n@@ -1,1 +1,1 @@\n-x = 1\n+x = 2\n"

    @pytest.fixture(autouse=True)
    def old_file(self, repo_files):
        repo_files["old.py"] = ("x = 1\n", "sha-old")

    def test_reads_old_path_and_writes_new_path(self, mock_client, task_info):
        outcome = integrate_file(mock_client, task_info, "br", parse(self.RENAME_DIFF)[0], "msg")

        assert outcome.succeeded
        assert outcome.path == "new.py"
        mock_client.get_content.assert_called_once_with("octo", "widgets", "old.py", "br")
        mock_client.find_blob_sha.assert_called_once_with("octo", "widgets", "new.py", "br")
        args = mock_client.create_or_update_file.call_args.args
        assert args[2] == "new.py"
        assert args[5] is None

    def test_existing_target_conditions_the_write(self, mock_client, task_info, repo_files):
        repo_files["new.py"] = ("stale\n", "sha-new")
        integrate_file(mock_client, task_info, "br", parse(self.RENAME_DIFF)[0], "msg")

        args = mock_client.create_or_update_file.call_args.args
        assert args[2] == "new.py"
        assert args[5] == "sha-new"

    def test_written_content_is_patched_old_content(self, mock_client, task_info):
        integrate_file(mock_client, task_info, "br", parse(self.RENAME_DIFF)[0], "msg")

        written = mock_client.create_or_update_file.call_args.args[3]
        assert written == encode_content("x = 2\n")

    def test_patched_file_with_new_target_path(self, mock_client, task_info):
        change = make_patch_result(patched_files=[{
            "sourceFilePath": "b.py", "targetFilePath": "c.py", "targetFileContent": "x = 2\n",
        }]).last_patch_result.patched_files[0]
        outcome = integrate_file(mock_client, task_info, "br", change, "msg")

        assert outcome.succeeded
        assert outcome.path == "c.py"
        mock_client.get_content.assert_called_once_with("octo", "widgets", "c.py", "br")
        args = mock_client.create_or_update_file.call_args.args
        assert args[2] == "c.py"
        assert args[5] is None
