"""Task queue: runs the unresolved specs of a store on a thread pool.

Tasks run on worker threads; everything else (saving output, moving specs
between pools, deciding retries and narrowing) happens on the thread calling
`TaskQueue.run()`.

`requests` can't abort a call in flight, so a timed-out task keeps its worker
until the call returns. Attempts are timed from the moment a worker picks them
up; one waiting behind such a worker is not charged for the wait.

Outcome of one attempt:

- success: output saved, spec resolved, the next page (if any) queued
- partial response tolerated by the task: same as success, with a
  non-critical error recorded on the resolution
- primary rate limit: no new tasks are dispatched, in-flight tasks finish,
  the rest stays unresolved
- secondary rate limit: in-flight tasks are cancelled, everything not
  resolved stays unresolved and the error propagates
- any other error: the spec is retried up to `retry_count` times, then
  narrowed down (archived, children queued) or left errored
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any

from github_search_harvester.taskqueue.context import TaskContext
from github_search_harvester.taskqueue.errors import (
    PartialResponseError,
    PrimaryRateLimitError,
    SecondaryRateLimitError,
    TaskTimeoutError,
)
from github_search_harvester.taskqueue.store import ErroredTask, ResolvedTask, TaskStore
from github_search_harvester.tasks.base import Command, Task
from github_search_harvester.tasks.spec import TaskResult, TaskSpec

logger = logging.getLogger(__name__)

START_POLL_INTERVAL = 0.05


@dataclass(frozen=True, slots=True)
class QueueOptions:
    concurrency: int = 6
    per_task_timeout: float = 30
    interval: float = 10
    interval_cap: int = 4
    retry_count: int = 3


class DispatchLimiter:
    """Allows at most `cap` task starts within any `interval` seconds.

    A non-positive `interval` or `cap` disables the limit.
    """

    def __init__(
        self,
        interval: float,
        cap: int,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._interval = interval
        self._cap = cap
        self._clock = clock
        self._sleep = sleep
        self._starts: deque[float] = deque()

    def acquire(self) -> None:
        if self._interval <= 0 or self._cap <= 0:
            return

        while True:
            now = self._clock()
            while self._starts and now - self._starts[0] >= self._interval:
                self._starts.popleft()
            if len(self._starts) < self._cap:
                self._starts.append(now)
                return
            self._sleep(self._interval - (now - self._starts[0]))


@dataclass
class _InFlight:
    task: Task[Any]
    cancel_event: threading.Event
    # set by the worker thread; None while the attempt waits for a free worker
    started_at: float | None = None


@dataclass
class QueueRunSummary:
    dispatched: int = 0
    halted_by_rate_limit: bool = False
    timed_out: list[str] = field(default_factory=list)


class TaskQueue:
    """Runs the specs of a `TaskStore` until nothing is left or a rate limit stops it."""

    def __init__(
        self,
        *,
        store: TaskStore,
        command: Command[Any],
        context: TaskContext,
        options: QueueOptions | None = None,
        limiter: DispatchLimiter | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._command = command
        self._context = context
        self._options = options or QueueOptions()
        self._limiter = limiter or DispatchLimiter(
            self._options.interval, self._options.interval_cap, clock=clock
        )
        self._clock = clock

        self._pending: deque[TaskSpec] = deque()
        self._failures: dict[str, int] = {}
        self._halted = False

    @property
    def store(self) -> TaskStore:
        return self._store

    def run(self) -> QueueRunSummary:
        """Run until done, halted by the primary rate limit, or aborted.

        Raises:
            SecondaryRateLimitError: The run was aborted; in-flight specs stay unresolved.
        """

        options = self._options
        summary = QueueRunSummary()
        self._pending = deque(self._store.unresolved.values())
        self._halted = False
        in_flight: dict[Future[TaskResult], _InFlight] = {}

        logger.info(
            "Starting task queue",
            extra={
                "unresolved": len(self._store.unresolved),
                "concurrency": options.concurrency,
                "retry_count": options.retry_count,
            },
        )

        executor = ThreadPoolExecutor(
            max_workers=options.concurrency, thread_name_prefix="harvester-task"
        )
        try:
            while True:
                while not self._halted and self._pending and len(in_flight) < options.concurrency:
                    spec = self._pending.popleft()
                    self._limiter.acquire()
                    task = self._command.create_task(spec)
                    cancel_event = threading.Event()
                    flight = _InFlight(task, cancel_event)
                    in_flight[executor.submit(self._execute, flight)] = flight
                    summary.dispatched += 1

                if not in_flight:
                    break

                done, _ = wait(
                    in_flight, timeout=self._next_deadline(in_flight), return_when=FIRST_COMPLETED
                )
                for future in done:
                    flight = in_flight.pop(future)
                    self._on_done(flight.task, future)

                for future, flight in list(in_flight.items()):
                    if self._expired(flight):
                        flight.cancel_event.set()
                        del in_flight[future]
                        summary.timed_out.append(flight.task.id)
                        self._on_error(
                            flight.task,
                            TaskTimeoutError(
                                f"Task {flight.task.id} timed out after {options.per_task_timeout}s"
                            ),
                        )
        except SecondaryRateLimitError:
            for flight in in_flight.values():
                flight.cancel_event.set()
            logger.error(
                "Secondary rate limit hit; aborting the run",
                extra={"in_flight": len(in_flight), "unresolved": len(self._store.unresolved)},
            )
            raise
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        summary.halted_by_rate_limit = self._halted
        logger.info(
            "Task queue finished",
            extra={
                "unresolved": len(self._store.unresolved),
                "resolved": len(self._store.resolved),
                "errored": len(self._store.errored),
                "archived": len(self._store.archived),
                "halted_by_rate_limit": self._halted,
            },
        )
        return summary

    def _execute(self, flight: _InFlight) -> TaskResult:
        flight.started_at = self._clock()
        return flight.task.execute(self._context, flight.cancel_event)

    def _next_deadline(self, in_flight: dict[Future[TaskResult], _InFlight]) -> float | None:
        timeout = self._options.per_task_timeout
        if timeout <= 0:
            return None

        now = self._clock()
        started = [f.started_at for f in in_flight.values() if f.started_at is not None]
        deadline = max(0.0, min(started) + timeout - now) if started else timeout
        if len(started) < len(in_flight):
            # a queued attempt starts once a timed-out worker returns
            deadline = min(deadline, START_POLL_INTERVAL)
        return deadline

    def _expired(self, flight: _InFlight) -> bool:
        timeout = self._options.per_task_timeout
        if timeout <= 0 or flight.started_at is None:
            return False
        return self._clock() - flight.started_at >= timeout

    def _halt(self, reason: str, **extra: Any) -> None:
        if not self._halted:
            logger.warning(
                "Primary rate limit reached; no more tasks will be dispatched",
                extra={"reason": reason, **extra},
            )
        self._halted = True

    def _on_done(self, task: Task[Any], future: Future[TaskResult]) -> None:
        try:
            result = future.result()
        except PrimaryRateLimitError as e:
            self._halt(str(e), task_id=task.id, reset_at=e.reset_at)
            return
        except SecondaryRateLimitError:
            raise
        except Exception as e:
            self._on_error(task, e)
            return

        self._on_success(task, result)

    def _on_success(
        self, task: Task[Any], result: TaskResult, non_critical_error: str | None = None
    ) -> None:
        store = self._store
        spec = task.spec

        task.save_output(self._context, result)

        store.unresolved.pop(spec.id, None)
        store.errored.pop(spec.id, None)
        store.resolved[spec.id] = ResolvedTask(spec=spec, non_critical_error=non_critical_error)

        next_spec = task.next_task(self._context, result)
        if next_spec is not None:
            store.unresolved[next_spec.id] = next_spec
            self._pending.append(next_spec)

        rate_limit = result.rate_limit
        if rate_limit is not None and rate_limit.is_below(self._context.rate_limit_stop_percent):
            self._halt(
                "remaining quota below threshold",
                task_id=spec.id,
                remaining=rate_limit.remaining,
                limit=rate_limit.limit,
                reset_at=rate_limit.reset_at,
            )

    def _on_error(self, task: Task[Any], error: Exception) -> None:
        if isinstance(error, PartialResponseError) and not task.should_record_as_error(error):
            try:
                result = task.parse_result(error.data)
            except Exception as parse_error:
                error = parse_error
            else:
                logger.warning(
                    "Partial response; saving the rest of the result",
                    extra={"task_id": task.id, "error": str(error)},
                )
                self._on_success(task, result, non_critical_error=str(error))
                return

        store = self._store
        spec = task.spec
        retry_count = self._options.retry_count

        failures = self._failures.get(spec.id, 0) + 1
        self._failures[spec.id] = failures

        store.unresolved.pop(spec.id, None)
        store.errored[spec.id] = ErroredTask(spec=spec, retry_count=failures - 1)

        logger.warning(
            "Task failed",
            extra={
                "task_id": spec.id,
                "attempt": failures,
                "error_type": type(error).__name__,
                "error": str(error),
            },
        )

        if failures <= retry_count:
            self._pending.append(spec)
            return

        children = task.narrowed_down_tasks(self._context)
        if not children:
            logger.error(
                "Task failed after all retries and can't be narrowed down",
                extra={"task_id": spec.id, "attempts": failures},
            )
            return

        del store.errored[spec.id]
        store.archived[spec.id] = spec
        for child in children:
            store.unresolved[child.id] = child
            self._pending.append(child)

        logger.info(
            "Task narrowed down",
            extra={"task_id": spec.id, "children": [c.id for c in children]},
        )
