"""Test configuration and fixtures."""

from __future__ import annotations

import logging
import threading
from typing import Any

import pytest

from github_search_harvester.taskqueue.context import InMemoryRunOutput, TaskContext
from github_search_harvester.taskqueue.engine import QueueOptions
from github_search_harvester.tasks.spec import FocusProjectCandidateSearchSpec

Response = dict[str, Any] | Exception


def rate_limit(remaining: int = 4999, limit: int = 5000) -> dict[str, Any]:
    return {
        "cost": 1,
        "limit": limit,
        "nodeCount": 1,
        "remaining": remaining,
        "resetAt": "2024-01-01T01:00:00Z",
        "used": limit - remaining,
    }


def search_page(
    nodes: list[Any],
    *,
    has_next_page: bool = False,
    end_cursor: str | None = None,
    remaining: int = 4999,
) -> dict[str, Any]:
    """GraphQL `data` of a search query."""

    return {
        "rateLimit": rate_limit(remaining=remaining),
        "search": {
            "pageInfo": {
                "startCursor": "start",
                "hasNextPage": has_next_page,
                "endCursor": end_cursor,
            },
            "repositoryCount": len(nodes),
            "nodes": nodes,
        },
    }


class FakeGraphQL:
    """Scripted GraphQL call.

    Responses are registered per search key (`searchString` or `orgName`) and
    cursor. Each call pops the next response of its key; the last one repeats.
    Exceptions are raised instead of returned.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._responses: dict[tuple[str, str | None], list[Response]] = {}
        self.calls: list[dict[str, Any]] = []

    @staticmethod
    def key(variables: dict[str, Any]) -> tuple[str, str | None]:
        search_key = variables.get("searchString") or variables.get("orgName")
        return str(search_key), variables.get("after")

    def add(self, search_key: str, *responses: Response, after: str | None = None) -> None:
        self._responses[(search_key, after)] = list(responses)

    def __call__(
        self, query: str, variables: dict[str, Any], cancel_event: threading.Event
    ) -> dict[str, Any]:
        key = self.key(variables)
        with self._lock:
            self.calls.append(variables)
            queue = self._responses[key]
            response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def fake_graphql() -> FakeGraphQL:
    return FakeGraphQL()


@pytest.fixture
def run_output() -> InMemoryRunOutput:
    return InMemoryRunOutput()


@pytest.fixture
def context(fake_graphql: FakeGraphQL, run_output: InMemoryRunOutput) -> TaskContext:
    return TaskContext(
        graphql=fake_graphql,
        current_run_output=run_output,
        logger=logging.getLogger("tests"),
        rate_limit_stop_percent=10,
    )


@pytest.fixture
def queue_options() -> QueueOptions:
    """Sequential, unthrottled queue; deterministic dispatch order."""

    return QueueOptions(
        concurrency=1,
        per_task_timeout=0,
        interval=0,
        interval_cap=0,
        retry_count=3,
    )


def focus_spec(
    created_after: str,
    created_before: str,
    *,
    task_id: str | None = None,
    start_cursor: str | None = None,
    originating_task_id: str | None = None,
    page_size: int = 100,
) -> FocusProjectCandidateSearchSpec:
    fields: dict[str, Any] = {
        "min_stars": 50,
        "min_forks": 50,
        "min_size_in_kb": 1000,
        "has_activity_after": "2023-01-01",
        "created_after": created_after,
        "created_before": created_before,
        "page_size": page_size,
        "start_cursor": start_cursor,
        "originating_task_id": originating_task_id,
    }
    if task_id is not None:
        fields["id"] = task_id
    return FocusProjectCandidateSearchSpec(**fields)
