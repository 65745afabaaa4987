"""Entry points invoked by the task transport, one call per delivered message.

The handlers are plain functions so any subscriber (Pub/Sub, SQS, a CLI)
can drive them; they return the acknowledgement decision instead of
acking themselves.
"""

import json
from typing import Callable

from pydantic import ValidationError

from triage_bot.config import Settings
from triage_bot.logger import get_logger
from triage_bot.models import (
    AckDecision,
    BuildResult,
    PatchResult,
    RunOutcome,
    RunReport,
    TaskInfo,
)
from triage_bot.pipeline.exceptions import MessageFormatError
from triage_bot.pipeline.graph import build_graph
from triage_bot.pipeline.reporter import format_build_result, post_comment
from triage_bot.pipeline.state import PipelineState, make_initial_state

logger = get_logger(__name__)

# Builds an API client scoped to one installation
ClientFactory = Callable[[int], object]


def decode_message(message: bytes | str | dict) -> dict:
    """Decode a raw transport payload into a JSON object."""
    if isinstance(message, dict):
        return message
    try:
        if isinstance(message, bytes):
            message = message.decode("utf-8")
        payload = json.loads(message)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MessageFormatError(f"Message is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise MessageFormatError("Message must be a JSON object")
    return payload


def parse_patch_result(message: bytes | str | dict) -> PatchResult:
    try:
        return PatchResult.model_validate(decode_message(message))
    except ValidationError as exc:
        raise MessageFormatError(f"Invalid patch result: {exc}") from exc


def parse_build_result(message: bytes | str | dict) -> BuildResult:
    try:
        return BuildResult.model_validate(decode_message(message))
    except ValidationError as exc:
        raise MessageFormatError(f"Invalid build result: {exc}") from exc


def build_run_report(state: PipelineState) -> RunReport:
    branch = state["branch"]
    return RunReport(
        outcome=state["outcome"] or RunOutcome.REPORTED_FAILURE,
        issue_number=state["patch_result"].task_info.issue_number,
        branch_name=branch.name if branch is not None else None,
        pr_url=state["pr_url"],
        file_outcomes=state["file_outcomes"],
        errors=state["errors"],
        comment_posted=state["comment_posted"],
    )


def run_pipeline(patch_result: PatchResult, client, settings: Settings | None = None) -> RunReport:
    """Run the patch-integration graph for one result and summarise it."""
    settings = settings or Settings()
    task = patch_result.task_info
    logger.info(
        "Processing patch result for %s/%s#%s",
        task.repo_owner, task.repo_name, task.issue_number,
    )
    graph = build_graph(client, max_concurrent_writes=settings.max_concurrent_writes)
    final_state = graph.invoke(make_initial_state(patch_result, settings.base_branch))
    report = build_run_report(final_state)
    logger.info("Finished #%s: %s", task.issue_number, report.outcome.value)
    return report


def handle_patch_result(
    message: bytes | str | dict,
    client_factory: ClientFactory,
    settings: Settings | None = None,
) -> AckDecision:
    """Process one patch-result message; always acknowledges a finished run."""
    try:
        patch_result = parse_patch_result(message)
    except MessageFormatError as exc:
        logger.error("Dropping malformed patch result: %s", exc)
        return AckDecision.ACK

    task = patch_result.task_info
    client = _create_client(client_factory, task)
    if client is None:
        return AckDecision.NACK
    try:
        run_pipeline(patch_result, client, settings)
    except Exception:
        logger.exception("Patch pipeline crashed for issue #%s", task.issue_number)
        return AckDecision.NACK
    finally:
        client.close()
    return AckDecision.ACK


def handle_build_result(message: bytes | str | dict, client_factory: ClientFactory) -> AckDecision:
    """Post a container build result as a comment on its issue."""
    try:
        build_result = parse_build_result(message)
    except MessageFormatError as exc:
        logger.error("Dropping malformed build result: %s", exc)
        return AckDecision.ACK

    task = build_result.task_info
    client = _create_client(client_factory, task)
    if client is None:
        return AckDecision.NACK
    try:
        post_comment(client, task, format_build_result(build_result))
    except Exception:
        logger.exception("Build result reporting crashed for issue #%s", task.issue_number)
        return AckDecision.NACK
    finally:
        client.close()
    return AckDecision.ACK


def _create_client(client_factory: ClientFactory, task: TaskInfo):
    try:
        return client_factory(task.installation_id)
    except Exception:
        logger.exception(
            "Could not create an API client for installation %s", task.installation_id
        )
        return None
