"""Abstract base classes for search tasks and their commands.

A `Task` wraps one immutable spec and knows how to run it (one GraphQL call),
how to continue it (next page) and how to narrow it down (smaller scopes).

A `Command` is the entry point of a task family: it seeds the initial
covering set of specs for a new process and builds a `Task` for any spec of
its family.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar

from github_search_harvester.taskqueue.errors import PartialResponseError, TaskCancelledError
from github_search_harvester.tasks.narrowing import continuation_spec
from github_search_harvester.tasks.spec import PageInfo, RateLimitInfo, TaskResult, TaskSpec

if TYPE_CHECKING:
    from github_search_harvester.taskqueue.context import TaskContext

SpecT = TypeVar("SpecT", bound=TaskSpec)


class Task(ABC, Generic[SpecT]):
    """One unit of search work over a single spec."""

    QUERY: ClassVar[str]

    def __init__(self, spec: SpecT) -> None:
        self.spec = spec

    @property
    def id(self) -> str:
        return self.spec.id

    @abstractmethod
    def build_query_parameters(self) -> dict[str, Any]:
        """Return the GraphQL variables for this task. Must not do any I/O."""

    def execute(self, context: TaskContext, cancel_event: threading.Event) -> TaskResult:
        """Run the query of this task.

        Raises:
            TaskCancelledError: If the cancel event is set before or after the call.
        """

        if cancel_event.is_set():
            raise TaskCancelledError(f"Task {self.id} was cancelled before it started")

        data = context.graphql(self.QUERY, self.build_query_parameters(), cancel_event)

        if cancel_event.is_set():
            raise TaskCancelledError(f"Task {self.id} was cancelled")

        return self.parse_result(data)

    def parse_result(self, data: dict[str, Any]) -> TaskResult:
        return TaskResult(
            payload=data,
            page_info=self.extract_page_info(data),
            rate_limit=RateLimitInfo.from_json(data.get("rateLimit")),
        )

    def extract_page_info(self, data: dict[str, Any]) -> PageInfo | None:
        """Locate the page info of the paginated connection in `data`, if any."""

        return None

    def next_task(self, context: TaskContext, result: TaskResult) -> SpecT | None:
        """Return the spec for the next page, or None when this was the last page."""

        if result.page_info is None or not result.page_info.has_next_page:
            return None

        context.logger.debug("Next page available", extra={"task_id": self.id})
        return continuation_spec(self.spec, end_cursor=result.page_info.end_cursor)

    @abstractmethod
    def narrowed_down_tasks(self, context: TaskContext) -> list[SpecT] | None:
        """Return smaller-scope specs covering the scope of this task.

        None means the task can't be narrowed down any further.
        """

    @abstractmethod
    def save_output(self, context: TaskContext, result: TaskResult) -> None:
        """Append the result elements of this task to the run output."""

    def should_record_as_error(self, error: Exception) -> bool:
        """Whether `error` counts as a failure of this task.

        A partial response is tolerated when the connection of this task came
        back and only some of its elements are null: the non-null part is saved
        and the task is resolved. A nulled-out connection (GitHub does that when
        the search itself times out) is a failure like any other.
        """

        if isinstance(error, PartialResponseError) and error.data:
            return not self.has_partial_result(error.data)
        return True

    def has_partial_result(self, data: dict[str, Any]) -> bool:
        """Whether `data` still holds the connection of this task."""

        return False


class Command(ABC, Generic[SpecT]):
    """Entry point of a task family."""

    name: ClassVar[str]

    @abstractmethod
    def create_task(self, spec: SpecT) -> Task[SpecT]:
        """Build the task for a spec of this family."""

    @abstractmethod
    def create_new_queue_items(self, context: TaskContext) -> list[SpecT]:
        """Return the initial specs of a new process."""
