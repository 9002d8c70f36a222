"""CLI entrypoint for the harvester."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from github_search_harvester import __version__
from github_search_harvester.config import HarvesterSettings, LocalSettings, QueueSettings
from github_search_harvester.github.client import GitHubGraphQLClient
from github_search_harvester.logging import configure_logging
from github_search_harvester.taskqueue.engine import QueueOptions
from github_search_harvester.taskqueue.errors import SecondaryRateLimitError
from github_search_harvester.taskqueue.process import run_process
from github_search_harvester.taskqueue.process_files import ProcessFileHelper
from github_search_harvester.taskqueue.store import requeue_all_errored
from github_search_harvester.tasks.factory import COMMAND_NAMES, CommandFactory

logger = logging.getLogger(__name__)


def _add_process_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--command",
        dest="task_command",
        required=True,
        choices=COMMAND_NAMES,
        help="Task family to run",
    )
    parser.add_argument(
        "--data-directory",
        default=None,
        help=(
            "Directory of the processes of the command "
            "(defaults to <HARVESTER_DATA_DIRECTORY>/<command>)"
        ),
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="harvester",
        description="Adaptive, resumable harvesting of GitHub GraphQL search results",
    )
    parser.add_argument(
        "--version", action="version", version=f"github-search-harvester {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    execute = subparsers.add_parser(
        "execute",
        help="Start a new process of a command, or resume its latest incomplete one",
    )
    _add_process_arguments(execute)
    execute.add_argument("--concurrency", type=int, default=None)
    execute.add_argument(
        "--per-task-timeout",
        type=float,
        default=None,
        help="Seconds before a running task is cancelled and counted as failed",
    )
    execute.add_argument("--interval", type=float, default=None, help="Dispatch window in seconds")
    execute.add_argument(
        "--interval-cap",
        type=int,
        default=None,
        help="Tasks started at most per dispatch window",
    )
    execute.add_argument(
        "--retry-count",
        type=int,
        default=None,
        help="Retries of a failing task before it is narrowed down",
    )
    execute.add_argument(
        "--rate-limit-stop-percent",
        type=float,
        default=None,
        help="Stop dispatching when the remaining quota drops below this percentage",
    )

    requeue = subparsers.add_parser(
        "requeue-errored",
        help="Move every errored task of the latest process back to unresolved",
    )
    _add_process_arguments(requeue)

    complete = subparsers.add_parser(
        "latest-process-complete",
        help="Exit with 0 if the latest process of the command is complete",
    )
    _add_process_arguments(complete)

    return parser


def _queue_options(settings: QueueSettings, args: argparse.Namespace) -> QueueOptions:
    return QueueOptions(
        concurrency=settings.concurrency if args.concurrency is None else args.concurrency,
        per_task_timeout=(
            settings.per_task_timeout_seconds
            if args.per_task_timeout is None
            else args.per_task_timeout
        ),
        interval=settings.interval_seconds if args.interval is None else args.interval,
        interval_cap=settings.interval_cap if args.interval_cap is None else args.interval_cap,
        retry_count=settings.retry_count if args.retry_count is None else args.retry_count,
    )


def _process_files(settings: LocalSettings, args: argparse.Namespace) -> ProcessFileHelper:
    if args.data_directory:
        return ProcessFileHelper(Path(args.data_directory))
    return ProcessFileHelper(settings.command_data_directory(args.task_command))


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # only execute talks to GitHub; the other subcommands work on local files
    settings_type = HarvesterSettings if args.command == "execute" else LocalSettings
    try:
        settings = settings_type()
        queue_settings = QueueSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level)
    files = _process_files(settings, args)

    if isinstance(settings, HarvesterSettings):
        options = _queue_options(queue_settings, args)
        stop_percent = (
            queue_settings.rate_limit_stop_percent
            if args.rate_limit_stop_percent is None
            else args.rate_limit_stop_percent
        )

        try:
            command = CommandFactory.create(args.task_command)
        except ValidationError as e:
            print(f"Configuration error for {args.task_command}:", file=sys.stderr)
            print(e, file=sys.stderr)
            return 2

        client = GitHubGraphQLClient(
            token=settings.github_token,
            base_url=settings.github_base_url,
        )
        try:
            result = run_process(
                command=command,
                files=files,
                graphql=client.graphql,
                options=options,
                rate_limit_stop_percent=stop_percent,
            )
        except SecondaryRateLimitError as e:
            logger.error("Run aborted; the process can be resumed later", extra={"error": str(e)})
            print(f"Aborted: {e}", file=sys.stderr)
            return 1
        finally:
            client.close()

        state = result.state
        print(
            f"Process {result.process_directory}: complete={result.complete} "
            f"unresolved={len(state.unresolved)} resolved={len(state.resolved)} "
            f"errored={len(state.errored)} archived={len(state.archived)}"
        )
        # Exit codes are designed to be CI-friendly.
        return 0 if result.complete else 4

    latest = files.latest_process_state_directory()
    state = files.read_process_state(latest) if latest is not None else None
    if latest is None or state is None:
        print(f"No process found in {files.data_directory}", file=sys.stderr)
        return 5

    if args.command == "requeue-errored":
        moved = requeue_all_errored(state)
        if moved:
            state.completion_date = None
        files.write_process_state(latest, state)
        logger.info("Errored tasks requeued", extra={"process_directory": latest, "moved": moved})
        print(f"Requeued {moved} errored task(s) of process {latest}")
        return 0

    if args.command == "latest-process-complete":
        complete = state.completion_date is not None
        print(f"Process {latest}: complete={complete}")
        return 0 if complete else 1

    parser.error(f"Unknown command: {args.command}")
    return 2
