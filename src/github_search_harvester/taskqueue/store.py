"""State pools of the task queue.

Every spec of a process lives in exactly one pool:

- `unresolved`: not run yet, or interrupted (rate limit, abort)
- `resolved`: ran successfully, possibly with a non-critical error
- `errored`: failed; `retry_count` is the number of retries spent
- `archived`: failed for good and replaced by narrowed-down specs

Pools are keyed by spec id. Only the engine thread mutates them.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from github_search_harvester.tasks.spec import AnyTaskSpec, TaskSpec


class CamelModel(BaseModel):
    """Model persisted with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ResolvedTask(CamelModel):
    spec: AnyTaskSpec
    non_critical_error: str | None = None


class ErroredTask(CamelModel):
    spec: AnyTaskSpec
    retry_count: int = 0


class TaskStore(CamelModel):
    unresolved: dict[str, AnyTaskSpec] = Field(default_factory=dict)
    resolved: dict[str, ResolvedTask] = Field(default_factory=dict)
    errored: dict[str, ErroredTask] = Field(default_factory=dict)
    archived: dict[str, AnyTaskSpec] = Field(default_factory=dict)

    def add_unresolved(self, specs: list[TaskSpec]) -> None:
        for spec in specs:
            self.unresolved[spec.id] = spec

    def is_done(self, retry_count: int) -> bool:
        """Whether nothing is left to run, now or after re-queueing retryable errors."""

        if self.unresolved:
            return False
        return all(e.retry_count >= retry_count for e in self.errored.values())


def add_errored_to_unresolved(store: TaskStore, retry_count: int) -> int:
    """Move errored specs that still have retries left back to `unresolved`.

    The retry budget starts over for the moved specs. Returns how many were moved.
    """

    moved = 0
    for task_id, errored in list(store.errored.items()):
        if errored.retry_count < retry_count:
            store.unresolved[task_id] = errored.spec
            del store.errored[task_id]
            moved += 1
    return moved


def requeue_all_errored(store: TaskStore) -> int:
    """Move every errored spec back to `unresolved`, regardless of retries spent."""

    moved = len(store.errored)
    for task_id, errored in store.errored.items():
        store.unresolved[task_id] = errored.spec
    store.errored.clear()
    return moved
