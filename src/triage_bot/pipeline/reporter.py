"""Formats and posts issue comments.

Posting is attempted exactly once. A failed post is logged and reported to
the caller as ``False``; it never triggers a second comment.
"""

import re

from triage_bot.github import CommentPostError
from triage_bot.logger import get_logger
from triage_bot.models import BuildResult, FileOutcome, PatchResult, TaskInfo

logger = get_logger(__name__)

_MARKDOWN_SPECIAL_RE = re.compile(r"([_*`])")
_BACKTICK_RUN_RE = re.compile(r"`+")


def escape_markdown(text: str) -> str:
    return _MARKDOWN_SPECIAL_RE.sub(r"\\\1", text)


def fenced(text: str, language: str = "") -> str:
    """Wrap ``text`` in a code fence longer than any backtick run inside it."""
    longest = max((len(run) for run in _BACKTICK_RUN_RE.findall(text)), default=0)
    fence = "`" * max(3, longest + 1)
    return f"{fence}{language}\n{text.rstrip(chr(10))}\n{fence}"


def post_comment(client, task_info: TaskInfo, body: str) -> bool:
    """Post ``body`` on the originating issue.

    Returns:
        True if the comment was created, False if the post failed.
    """
    try:
        client.create_issue_comment(
            task_info.repo_owner, task_info.repo_name, task_info.issue_number, body
        )
    except CommentPostError as exc:
        logger.error(
            "Failed to post a comment on %s/%s#%s: %s",
            task_info.repo_owner, task_info.repo_name, task_info.issue_number, exc,
        )
        return False
    logger.info(
        "Posted a comment on %s/%s#%s",
        task_info.repo_owner, task_info.repo_name, task_info.issue_number,
    )
    return True


def format_upstream_error(patch_result: PatchResult) -> str:
    """Diagnostic for a result whose upstream computation reported an error."""
    task = patch_result.task_info
    last = patch_result.last_patch_result
    parts = [
        f"We could not generate a fix for issue #{task.issue_number}.",
        "",
        "**Error:**",
        fenced(last.error),
    ]
    if last.unified_diff:
        parts += ["", "**Generated diff (not applied):**", fenced(last.unified_diff, "diff")]
    if last.patched_files:
        parts += ["", "**Files in the generated patch (not applied):**"]
        parts += [_patched_file_line(item) for item in last.patched_files]
    return "\n".join(parts)


def format_no_changes(task_info: TaskInfo) -> str:
    return (
        f"We looked into issue #{task_info.issue_number} but the patch generation "
        "produced no changes, so no pull request was opened."
    )


def format_step_failure(task_info: TaskInfo, step: str, message: str,
                        branch_name: str | None = None) -> str:
    """Diagnostic for a fatal step (diff parsing, base ref lookup, branch creation)."""
    parts = [
        f"We could not open a pull request for issue #{task_info.issue_number}: "
        f"the `{step}` step failed.",
        "",
        fenced(message),
    ]
    if branch_name:
        parts += ["", f"Branch `{branch_name}` was created before the failure."]
    return "\n".join(parts)


def format_file_failures(task_info: TaskInfo, branch_name: str,
                         outcomes: list[FileOutcome]) -> str:
    """Aggregate diagnostic for a run where at least one file write failed."""
    failed = [outcome for outcome in outcomes if not outcome.succeeded]
    written = [outcome for outcome in outcomes if outcome.succeeded]
    parts = [
        f"We could not open a pull request for issue #{task_info.issue_number}: "
        f"{len(failed)} of {len(outcomes)} file(s) could not be updated.",
        "",
        "**Failed files:**",
    ]
    parts += [f"- `{outcome.path}` ({outcome.error_type}): {outcome.error}" for outcome in failed]
    if written:
        parts += ["", "**Files already committed:**"]
        parts += [f"- `{outcome.path}`" for outcome in written]
    parts += ["", f"Partial changes are on branch `{branch_name}`."]
    return "\n".join(parts)


def format_pr_failure(task_info: TaskInfo, branch_name: str, message: str) -> str:
    return "\n".join([
        f"The fix for issue #{task_info.issue_number} was committed to branch "
        f"`{branch_name}`, but the pull request could not be opened.",
        "",
        fenced(message),
    ])


def format_pull_request_body(task_info: TaskInfo, outcomes: list[FileOutcome]) -> str:
    parts = [f"Automated fix for #{task_info.issue_number}"]
    if task_info.issue_title:
        parts[0] += f": {task_info.issue_title}"
    parts += ["", f"Closes #{task_info.issue_number}", "", "### Changed files"]
    parts += [
        f"- `{outcome.path}` (+{outcome.added} / -{outcome.removed})" for outcome in outcomes
    ]
    return "\n".join(parts)


def format_build_result(build_result: BuildResult) -> str:
    """Render every Dockerfile attempt of a container build result."""
    messages = []
    for attempt in build_result.history:
        messages.append(
            "Docker File:\n"
            f"{fenced(attempt.docker_file, 'dockerfile')}\n"
            f"Build Success: {attempt.build_success}\n"
            f"Error Message: {escape_markdown(attempt.error_logs)}"
        )
    if not messages:
        return (
            f"The container build for issue #{build_result.task_info.issue_number} "
            "finished without any attempts to report."
        )
    return "\n".join(messages)


def _patched_file_line(item) -> str:
    if item.source_file_path == item.target_file_path:
        return f"- `{item.target_file_path}`"
    return f"- `{item.source_file_path}` -> `{item.target_file_path}`"
