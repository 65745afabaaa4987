"""Classifies an incoming patch result as "open a pull request" or "report"."""

from triage_bot.models import (
    Decision,
    DispatchDecision,
    FilePatch,
    PatchedFile,
    PatchKind,
    PatchResult,
)
from triage_bot.patching import ParseError, parse

NO_CHANGES_REASON = "The patch generation finished without an error but produced no changes."


def collect_changes(patch_result: PatchResult) -> list[FilePatch] | list[PatchedFile]:
    """Return the authoritative change set of a result.

    Raises:
        ParseError: If the result carries a malformed unified diff.
    """
    last = patch_result.last_patch_result
    if last.kind == PatchKind.UNIFIED_DIFF:
        return parse(last.unified_diff or "")
    return list(last.patched_files)


def decide(patch_result: PatchResult) -> DispatchDecision:
    """Pick the downstream action for ``patch_result``.

    Rules, in priority order:
    1. A non-empty upstream error always reports the failure.
    2. A non-empty change set opens a pull request.
    3. Otherwise report that no changes were produced.

    A diff that does not parse is reported before any remote call is made.
    """
    error = patch_result.last_patch_result.error
    if error.strip():
        return DispatchDecision(action=Decision.REPORT_FAILURE, reason=error)

    try:
        changes = collect_changes(patch_result)
    except ParseError as exc:
        return DispatchDecision(
            action=Decision.REPORT_FAILURE,
            reason=f"The generated diff could not be parsed: {exc}",
        )

    if changes:
        return DispatchDecision(
            action=Decision.GENERATE_PULL_REQUEST,
            change_count=len(changes),
        )
    return DispatchDecision(
        action=Decision.REPORT_FAILURE,
        reason=NO_CHANGES_REASON,
        no_changes=True,
    )
