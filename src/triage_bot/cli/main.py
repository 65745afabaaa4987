"""CLI entry point for the issue triage bot."""
import argparse
from dotenv import load_dotenv
import json
import sys
import traceback
from pathlib import Path

from triage_bot.config import ConfigError, Settings, load_settings
from triage_bot.github.exceptions import GitHubError
from triage_bot.logger import configure_logging
from triage_bot.models import AckDecision, RunOutcome, RunReport
from triage_bot.pipeline.exceptions import MessageFormatError, PipelineError

load_dotenv()

# Exit codes
EXIT_SUCCESS = 0
EXIT_INVALID_INPUT = 1
EXIT_PIPELINE_ERROR = 3
EXIT_REPORTED_FAILURE = 4
EXIT_UNEXPECTED = 5
EXIT_KEYBOARD_INTERRUPT = 130


def build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser."""
    parser = argparse.ArgumentParser(
        prog="triage-bot",
        description="Turn generated patches and build results into pull requests and comments",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose output")
    subparsers = parser.add_subparsers(dest="command", required=True)

    patch_parser = subparsers.add_parser(
        "patch-result", help="Apply a patch result message and open a pull request"
    )
    patch_parser.add_argument("message_path", type=str, help="Path to the message JSON ('-' for stdin)")
    patch_parser.add_argument(
        "--base-branch",
        type=str,
        default=None,
        help="Branch to cut the work branch from (default: $BASE_BRANCH or main)",
    )
    patch_parser.add_argument(
        "--max-workers",
        type=int,
        default=None,
        help="Maximum concurrent file writes (default: $MAX_CONCURRENT_WRITES or 4)",
    )
    patch_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the dispatch decision and config without calling the API",
    )
    patch_parser.add_argument(
        "--output-json", action="store_true", help="Output the run report as JSON"
    )

    build_parser_ = subparsers.add_parser(
        "build-result", help="Post a container build result as an issue comment"
    )
    build_parser_.add_argument("message_path", type=str, help="Path to the message JSON ('-' for stdin)")
    return parser


def read_message(raw_path: str) -> str:
    """Read the message text from a file or stdin.

    Raises:
        SystemExit: If the file does not exist.
    """
    if raw_path == "-":
        return sys.stdin.read()
    path = Path(raw_path).expanduser()
    if not path.is_file():
        print(f"Error: '{raw_path}' is not a file.", file=sys.stderr)
        raise SystemExit(EXIT_INVALID_INPUT)
    return path.read_text(encoding="utf-8")


def create_client_factory(settings: Settings):
    """Return a factory building one API client per installation.

    Installation tokens are minted outside this tool; every installation
    uses the configured token.
    """
    from triage_bot.github.client import GitHubClient

    def factory(installation_id: int) -> GitHubClient:
        return GitHubClient(
            token=settings.github_token,
            base_url=settings.api_url,
            timeout=settings.http_timeout,
            committer_name=settings.committer_name,
            committer_email=settings.committer_email,
        )

    return factory


def format_report_json(report: RunReport) -> str:
    return json.dumps(report.model_dump(mode="json"), indent=2)


def print_report_human(report: RunReport) -> None:
    """Print the run report in human-readable format."""
    print(f"\n{'='*60}")
    print("Triage Bot Results")
    print(f"{'='*60}")
    print(f"\nIssue: #{report.issue_number}")
    print(f"Outcome: {report.outcome.value}")
    if report.branch_name:
        print(f"Branch: {report.branch_name}")
    if report.pr_url:
        print(f"Pull request: {report.pr_url}")
    if report.file_outcomes:
        print(f"\nFiles ({len(report.file_outcomes)} total, {len(report.failed_files)} failed):")
        for outcome in report.file_outcomes:
            status = "ok" if outcome.succeeded else f"FAILED ({outcome.error_type})"
            print(f"  {outcome.path}: {status}")
    if report.errors:
        print(f"\nErrors ({len(report.errors)}):")
        for err in report.errors:
            print(f"  - {err}")
    print(f"Comment posted: {'yes' if report.comment_posted else 'no'}")
    print(f"\n{'='*60}")


def determine_exit_code(report: RunReport) -> int:
    """Determine the exit code from the run report."""
    if report.outcome == RunOutcome.REPORTED_FAILURE:
        return EXIT_REPORTED_FAILURE
    return EXIT_SUCCESS


def _handle_error(label: str, exc: BaseException, verbose: bool, exit_code: int) -> int:
    """Print error message to stderr and return the exit code."""
    print(f"{label}: {exc}", file=sys.stderr)
    if verbose:
        traceback.print_exc(file=sys.stderr)
    return exit_code


def _run_patch_result(args: argparse.Namespace, settings: Settings, message: str) -> int:
    from triage_bot.pipeline.dispatcher import decide
    from triage_bot.pipeline.handler import parse_patch_result, run_pipeline

    overrides = {}
    if args.base_branch:
        overrides["base_branch"] = args.base_branch
    if args.max_workers is not None:
        if args.max_workers < 1:
            print("Error: --max-workers must be at least 1.", file=sys.stderr)
            return EXIT_INVALID_INPUT
        overrides["max_concurrent_writes"] = args.max_workers
    if overrides:
        settings = settings.model_copy(update=overrides)

    patch_result = parse_patch_result(message)

    if args.dry_run:
        decision = decide(patch_result)
        payload = {"config": settings.safe_dict(), "decision": decision.model_dump(mode="json")}
        print(json.dumps(payload, indent=2))
        return EXIT_SUCCESS

    client = create_client_factory(settings)(patch_result.task_info.installation_id)
    try:
        report = run_pipeline(patch_result, client, settings)
    finally:
        client.close()

    if args.output_json:
        print(format_report_json(report))
    else:
        print_report_human(report)
    return determine_exit_code(report)


def _run_build_result(settings: Settings, message: str) -> int:
    from triage_bot.pipeline.handler import handle_build_result

    decision = handle_build_result(message, create_client_factory(settings))
    return EXIT_SUCCESS if decision == AckDecision.ACK else EXIT_PIPELINE_ERROR


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:]).

    Returns:
        Exit code integer.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging("DEBUG" if args.verbose else None)

    try:
        message = read_message(args.message_path)
    except SystemExit as exc:
        return exc.code

    try:
        settings = load_settings(dotenv=False)
        if args.command == "patch-result":
            return _run_patch_result(args, settings, message)
        return _run_build_result(settings, message)

    except (ConfigError, MessageFormatError) as exc:
        return _handle_error("Invalid input", exc, args.verbose, EXIT_INVALID_INPUT)

    except (PipelineError, GitHubError) as exc:
        return _handle_error("Pipeline error", exc, args.verbose, EXIT_PIPELINE_ERROR)

    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return EXIT_KEYBOARD_INTERRUPT

    except Exception as exc:
        return _handle_error("Unexpected error", exc, args.verbose, EXIT_UNEXPECTED)


if __name__ == "__main__":
    sys.exit(main())
