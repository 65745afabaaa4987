"""LangGraph state machine that turns a patch result into a pull request.

Wires the dispatcher, the per-file patch integration and the comment
reporter into a StateGraph. Every remote step is terminal on failure: the
run is routed straight to ``report_node`` and later steps never run.
"""

import uuid
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable

from langgraph.graph import END, START, StateGraph

from triage_bot.github import (
    ContentFetchError,
    GitHubError,
    PRCreateError,
    encode_content,
)
from triage_bot.logger import get_logger
from triage_bot.models import (
    BranchRef,
    Decision,
    FileOutcome,
    FilePatch,
    PatchedFile,
    RemoteFileHandle,
    RunOutcome,
    TaskInfo,
)
from triage_bot.patching import PatchError, apply, count_changes
from triage_bot.pipeline.dispatcher import collect_changes, decide
from triage_bot.pipeline.exceptions import GraphBuildError
from triage_bot.pipeline.reporter import (
    format_file_failures,
    format_no_changes,
    format_pr_failure,
    format_pull_request_body,
    format_step_failure,
    format_upstream_error,
    post_comment,
)
from triage_bot.pipeline.state import PipelineState

logger = get_logger(__name__)

DEFAULT_MAX_CONCURRENT_WRITES = 4

# Step names, used in diagnostics
STEP_UPSTREAM = "patch generation"
STEP_PARSE = "parse diff"
STEP_RESOLVE_BASE = "resolve base branch"
STEP_CREATE_BRANCH = "create branch"
STEP_APPLY_FILES = "apply files"
STEP_CREATE_PR = "create pull request"


def make_branch_name(issue_number: int) -> str:
    """Fresh work-branch name; unique even when the same task is redelivered."""
    return f"feature-{issue_number}-{uuid.uuid4()}"


def commit_message(task_info: TaskInfo) -> str:
    return f"Fix for the issue #{task_info.issue_number}"


def pull_request_title(task_info: TaskInfo) -> str:
    title = f"Fix for issue #{task_info.issue_number}"
    if task_info.issue_title:
        title += f": {task_info.issue_title}"
    return title


def change_path(change: FilePatch | PatchedFile) -> str:
    if isinstance(change, FilePatch):
        return change.target_path
    return change.target_file_path


# ---------------------------------------------------------------------------
# Per-file integration (runs on worker threads)
# ---------------------------------------------------------------------------

def integrate_file(
    client,
    task_info: TaskInfo,
    branch_name: str,
    change: FilePatch | PatchedFile,
    message: str,
) -> FileOutcome:
    """Fetch, patch and conditionally write one file on ``branch_name``.

    Patch and API failures are returned as a failed FileOutcome so one file
    never stops the others.
    """
    path = change_path(change)
    try:
        if isinstance(change, FilePatch):
            content, sha, added, removed = _prepare_file_patch(
                client, task_info, branch_name, change
            )
        else:
            content, sha, added, removed = _prepare_patched_file(
                client, task_info, branch_name, change
            )
        commit_sha = client.create_or_update_file(
            task_info.repo_owner,
            task_info.repo_name,
            path,
            encode_content(content),
            message,
            sha,
            branch_name,
        )
    except (PatchError, GitHubError) as exc:
        logger.warning("Could not update %s on %s: %s", path, branch_name, exc)
        return FileOutcome(
            path=path, succeeded=False, error=str(exc), error_type=type(exc).__name__
        )

    logger.info("Updated %s on %s (commit %s)", path, branch_name, commit_sha)
    return FileOutcome(
        path=path, succeeded=True, commit_sha=commit_sha, added=added, removed=removed
    )


def _prepare_file_patch(
    client, task_info: TaskInfo, branch_name: str, file_patch: FilePatch
) -> tuple[str, str | None, int, int]:
    counts = (file_patch.added_count, file_patch.removed_count)
    if file_patch.is_new_file:
        return apply(None, file_patch), None, *counts

    source_path = file_patch.source_path
    handle = client.get_content(
        task_info.repo_owner, task_info.repo_name, source_path, branch_name
    )
    updated = apply(handle.content, file_patch)
    if file_patch.target_path == source_path:
        return updated, handle.blob_sha, *counts

    # Renamed: the write is conditioned on whatever already sits at the new path.
    sha = client.find_blob_sha(
        task_info.repo_owner, task_info.repo_name, file_patch.target_path, branch_name
    )
    return updated, sha, *counts


def _prepare_patched_file(
    client, task_info: TaskInfo, branch_name: str, patched_file: PatchedFile
) -> tuple[str, str | None, int, int]:
    handle = _fetch_existing(client, task_info, patched_file.target_file_path, branch_name)
    original = handle.content if handle is not None else ""
    added, removed = count_changes(original, patched_file.target_file_content)
    sha = handle.blob_sha if handle is not None else None
    return patched_file.target_file_content, sha, added, removed


def _fetch_existing(
    client, task_info: TaskInfo, path: str, ref: str
) -> RemoteFileHandle | None:
    try:
        return client.get_content(task_info.repo_owner, task_info.repo_name, path, ref)
    except ContentFetchError as exc:
        if exc.status_code == 404:
            return None
        raise


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------

def dispatch_node(state: PipelineState) -> dict:
    """Classify the incoming result and load its change set."""
    patch_result = state["patch_result"]
    decision = decide(patch_result)
    if decision.action == Decision.GENERATE_PULL_REQUEST:
        return {"decision": decision, "changes": collect_changes(patch_result)}

    if decision.no_changes:
        return {"decision": decision}

    step = STEP_UPSTREAM if patch_result.last_patch_result.error.strip() else STEP_PARSE
    return {
        "decision": decision,
        "failed_step": step,
        "failure_message": decision.reason,
        "errors": [f"{step}: {decision.reason}"],
    }


def make_resolve_base_node(client) -> Callable[[PipelineState], dict]:
    """Factory: returns a node closure that reads the base branch head commit.

    On error: records the failure; no branch is created.
    """

    def resolve_base_node(state: PipelineState) -> dict:
        task = state["patch_result"].task_info
        try:
            base_sha = client.get_ref(task.repo_owner, task.repo_name, state["base_branch"])
        except GitHubError as exc:
            return _fatal(STEP_RESOLVE_BASE, exc)
        return {"base_sha": base_sha}

    return resolve_base_node


def make_create_branch_node(client) -> Callable[[PipelineState], dict]:
    """Factory: returns a node closure that cuts the work branch from the base sha."""

    def create_branch_node(state: PipelineState) -> dict:
        task = state["patch_result"].task_info
        branch = BranchRef(name=make_branch_name(task.issue_number), base_sha=state["base_sha"])
        try:
            client.create_ref(task.repo_owner, task.repo_name, branch.name, branch.base_sha)
        except GitHubError as exc:
            return _fatal(STEP_CREATE_BRANCH, exc)
        return {"branch": branch}

    return create_branch_node


def make_apply_files_node(
    client, max_concurrent_writes: int = DEFAULT_MAX_CONCURRENT_WRITES
) -> Callable[[PipelineState], dict]:
    """Factory: returns a node closure that writes every file concurrently.

    The closure waits for every file to finish (join barrier) before it
    returns, so the gate sees the complete set of outcomes. A failure in one
    file never cancels the others.
    """

    def apply_files_node(state: PipelineState) -> dict:
        task = state["patch_result"].task_info
        branch_name = state["branch"].name
        changes = list(state["changes"])
        message = commit_message(task)
        workers = max(1, min(max_concurrent_writes, len(changes)))

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="file-write") as pool:
            futures = [
                pool.submit(integrate_file, client, task, branch_name, change, message)
                for change in changes
            ]
            wait(futures)

        outcomes: list[FileOutcome] = []
        for change, future in zip(changes, futures):
            try:
                outcomes.append(future.result())
            except Exception as exc:
                logger.exception("Unexpected error while updating %s", change_path(change))
                outcomes.append(
                    FileOutcome(
                        path=change_path(change),
                        succeeded=False,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
                )

        failed = [outcome for outcome in outcomes if not outcome.succeeded]
        if not failed:
            return {"file_outcomes": outcomes}
        return {
            "file_outcomes": outcomes,
            "failed_step": STEP_APPLY_FILES,
            "failure_message": f"{len(failed)} of {len(outcomes)} file(s) could not be updated",
            "errors": [f"{outcome.path}: {outcome.error}" for outcome in failed],
        }

    return apply_files_node


def make_create_pull_request_node(client) -> Callable[[PipelineState], dict]:
    """Factory: returns a node closure that opens the pull request."""

    def create_pull_request_node(state: PipelineState) -> dict:
        task = state["patch_result"].task_info
        try:
            pr_url = client.create_pull_request(
                task.repo_owner,
                task.repo_name,
                pull_request_title(task),
                state["branch"].name,
                state["base_branch"],
                format_pull_request_body(task, state["file_outcomes"]),
            )
        except PRCreateError as exc:
            return _fatal(STEP_CREATE_PR, exc)
        logger.info("Created a PR: %s", pr_url)
        return {"pr_url": pr_url, "outcome": RunOutcome.PULL_REQUEST_OPENED}

    return create_pull_request_node


def make_report_node(client) -> Callable[[PipelineState], dict]:
    """Factory: returns a node closure that posts the run's diagnostic comment."""

    def report_node(state: PipelineState) -> dict:
        patch_result = state["patch_result"]
        task = patch_result.task_info
        decision = state["decision"]
        step = state["failed_step"]
        branch = state["branch"]

        outcome = RunOutcome.REPORTED_FAILURE
        if decision is not None and decision.no_changes:
            body = format_no_changes(task)
            outcome = RunOutcome.NO_CHANGES
        elif step == STEP_UPSTREAM:
            body = format_upstream_error(patch_result)
        elif step == STEP_APPLY_FILES:
            body = format_file_failures(task, branch.name, state["file_outcomes"])
        elif step == STEP_CREATE_PR:
            body = format_pr_failure(task, branch.name, state["failure_message"])
        else:
            body = format_step_failure(
                task,
                step or "unknown",
                state["failure_message"] or "",
                branch_name=branch.name if branch is not None else None,
            )

        posted = post_comment(client, task, body)
        return {"outcome": outcome, "comment_posted": posted}

    return report_node


def _fatal(step: str, exc: Exception) -> dict:
    logger.error("%s failed: %s", step, exc)
    return {
        "failed_step": step,
        "failure_message": str(exc),
        "errors": [f"{step}: {exc}"],
    }


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

def route_after_dispatch(state: PipelineState) -> str:
    decision = state["decision"]
    if decision is not None and decision.action == Decision.GENERATE_PULL_REQUEST:
        return "integrate"
    return "report"


def route_on_failure(state: PipelineState) -> str:
    """Send the run to the reporter as soon as a step has failed."""
    return "report" if state["failed_step"] else "continue"


def gate_file_outcomes(state: PipelineState) -> str:
    """Open a pull request only when every file write succeeded."""
    outcomes = state["file_outcomes"]
    if outcomes and all(outcome.succeeded for outcome in outcomes):
        return "create_pull_request"
    return "report"


def build_graph(client, max_concurrent_writes: int = DEFAULT_MAX_CONCURRENT_WRITES):
    """Build and compile the patch-integration StateGraph.

    Edge topology:
      START -> dispatch_node -> {resolve_base_node, report_node}
      resolve_base_node -> {create_branch_node, report_node}
      create_branch_node -> {apply_files_node, report_node}
      apply_files_node -> gate_file_outcomes -> {create_pull_request_node, report_node}
      create_pull_request_node -> {END, report_node}
      report_node -> END

    Args:
        client: Repository-hosting API client (see GitHubClient).
        max_concurrent_writes: Upper bound on concurrent file writes.

    Returns:
        CompiledStateGraph ready to invoke.

    Raises:
        GraphBuildError: If graph construction fails.
    """
    try:
        graph = StateGraph(PipelineState)

        graph.add_node("dispatch_node", dispatch_node)
        graph.add_node("resolve_base_node", make_resolve_base_node(client))
        graph.add_node("create_branch_node", make_create_branch_node(client))
        graph.add_node("apply_files_node", make_apply_files_node(client, max_concurrent_writes))
        graph.add_node("create_pull_request_node", make_create_pull_request_node(client))
        graph.add_node("report_node", make_report_node(client))

        graph.add_edge(START, "dispatch_node")
        graph.add_conditional_edges(
            "dispatch_node",
            route_after_dispatch,
            {"integrate": "resolve_base_node", "report": "report_node"},
        )
        graph.add_conditional_edges(
            "resolve_base_node",
            route_on_failure,
            {"continue": "create_branch_node", "report": "report_node"},
        )
        graph.add_conditional_edges(
            "create_branch_node",
            route_on_failure,
            {"continue": "apply_files_node", "report": "report_node"},
        )
        graph.add_conditional_edges(
            "apply_files_node",
            gate_file_outcomes,
            {"create_pull_request": "create_pull_request_node", "report": "report_node"},
        )
        graph.add_conditional_edges(
            "create_pull_request_node",
            route_on_failure,
            {"continue": END, "report": "report_node"},
        )
        graph.add_edge("report_node", END)

        return graph.compile()

    except Exception as exc:
        raise GraphBuildError(f"Failed to build patch pipeline graph: {exc}") from exc
