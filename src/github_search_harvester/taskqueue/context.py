"""Execution context handed to every task.

The context carries everything a task needs from the outside world:

- the GraphQL call (one query in, one `data` dict out)
- the run output sink
- a logger
- the primary rate limit stop threshold
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from github_search_harvester.tasks.spec import TaskRunOutputItem

GraphQLCall = Callable[[str, dict[str, Any], threading.Event], dict[str, Any]]


class RunOutput(Protocol):
    def append(self, item: TaskRunOutputItem) -> None: ...


class InMemoryRunOutput:
    """Run output kept in a list. Used by tests and dry runs."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: list[TaskRunOutputItem] = []

    def append(self, item: TaskRunOutputItem) -> None:
        with self._lock:
            self._items.append(item)

    @property
    def items(self) -> list[TaskRunOutputItem]:
        with self._lock:
            return list(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class JsonLinesRunOutput:
    """Run output appended to a file, one JSON object per line.

    Each line is written under a lock so concurrent appends never interleave.
    The order of lines follows completion order, not submission order.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def append(self, item: TaskRunOutputItem) -> None:
        line = json.dumps(item.to_json(), ensure_ascii=False)
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")


@dataclass(frozen=True, slots=True)
class TaskContext:
    graphql: GraphQLCall
    current_run_output: RunOutput
    logger: logging.Logger
    rate_limit_stop_percent: float = 10
