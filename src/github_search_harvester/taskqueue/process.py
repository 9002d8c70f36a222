"""Running a command as a resumable process.

`run_process` implements one `execute` invocation:

1. If the latest process of the command is missing or complete, start a new
   one seeded with the initial specs of the command. Otherwise resume it,
   re-queueing errored specs that still have retries left.
2. Run the task queue, appending output to a new output file of the process.
3. Save the state. The process is complete once nothing is left to run.

A secondary rate limit (or any unexpected error) is recorded as the
completion error of the process, which stays resumable.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from github_search_harvester.taskqueue.context import GraphQLCall, JsonLinesRunOutput, TaskContext
from github_search_harvester.taskqueue.engine import DispatchLimiter, QueueOptions, TaskQueue
from github_search_harvester.taskqueue.process_files import ProcessFileHelper, ProcessState
from github_search_harvester.taskqueue.store import add_errored_to_unresolved
from github_search_harvester.tasks.base import Command

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProcessRunResult:
    process_directory: str
    state: ProcessState
    complete: bool


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


def run_process(
    *,
    command: Command[Any],
    files: ProcessFileHelper,
    graphql: GraphQLCall,
    options: QueueOptions,
    rate_limit_stop_percent: float,
    now_fn: Callable[[], datetime] = _utc_now,
    limiter: DispatchLimiter | None = None,
) -> ProcessRunResult:
    now = now_fn()
    output_file_name = files.output_file_name(now)

    latest = files.latest_process_state_directory()
    state = files.read_process_state(latest) if latest is not None else None

    resuming = latest is not None and state is not None and state.completion_date is None
    process_directory = (
        latest if latest is not None and resuming else files.new_process_directory_name(now)
    )

    context = TaskContext(
        graphql=graphql,
        current_run_output=JsonLinesRunOutput(
            files.output_file(process_directory, output_file_name)
        ),
        logger=logger,
        rate_limit_stop_percent=rate_limit_stop_percent,
    )

    if state is None or not resuming:
        # seed first so a failing seed leaves no empty process behind
        specs = command.create_new_queue_items(context)
        files.create_process_state_directory(now)
        state = ProcessState(start_date=now)
        state.add_unresolved(specs)
        logger.info(
            "Starting a new process",
            extra={"process_directory": process_directory, "unresolved": len(state.unresolved)},
        )
    else:
        requeued = add_errored_to_unresolved(state, options.retry_count)
        logger.info(
            "Resuming process",
            extra={
                "process_directory": process_directory,
                "unresolved": len(state.unresolved),
                "requeued_errored": requeued,
            },
        )

    if output_file_name not in state.output_file_names:
        state.output_file_names.append(output_file_name)
    state.completion_error = None
    files.write_process_state(process_directory, state)

    queue = TaskQueue(
        store=state, command=command, context=context, options=options, limiter=limiter
    )
    try:
        queue.run()
    except Exception as e:
        state.completion_error = f"{type(e).__name__}: {e}"
        files.write_process_state(process_directory, state)
        raise

    complete = state.is_done(options.retry_count)
    if complete:
        state.completion_date = now_fn()
    files.write_process_state(process_directory, state)

    logger.info(
        "Process state saved",
        extra={"process_directory": process_directory, "complete": complete},
    )
    return ProcessRunResult(process_directory=process_directory, state=state, complete=complete)
