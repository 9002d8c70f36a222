"""Task specifications and task results.

A task spec is an immutable description of one unit of search work: its scope
(date ranges, thresholds, page size), its position in a page sequence (the
start cursor) and its lineage (parent and originating task ids).

Specs are frozen pydantic models. Deriving a new spec always goes through
`model_copy(update=...)` with a fresh id; a dispatched spec is never changed.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


def new_task_id() -> str:
    """Return a fresh, unique task id."""

    return str(uuid.uuid4())


class TaskSpec(BaseModel):
    """Fields shared by all task specs."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(default_factory=new_task_id)
    parent_id: str | None = Field(
        default=None,
        description="Id of the task this one was narrowed down from",
    )
    originating_task_id: str | None = Field(
        default=None,
        description="Id of the first task of the page chain this task belongs to",
    )


class FocusProjectCandidateSearchSpec(TaskSpec):
    """Repository search over a single creation-date interval."""

    kind: Literal["focus_project_candidate_search"] = "focus_project_candidate_search"

    min_stars: int
    min_forks: int
    min_size_in_kb: int
    has_activity_after: str
    created_after: str
    created_before: str
    page_size: int = Field(gt=0)
    start_cursor: str | None = None


class FocusOrganizationDetailsSpec(TaskSpec):
    """Paginated listing of the public repositories of one organization."""

    kind: Literal["focus_organization_details"] = "focus_organization_details"

    org_name: str
    page_size: int = Field(gt=0)
    start_cursor: str | None = None


class UserCountSearchSpec(TaskSpec):
    """Aggregate user count for one location. No pages, no narrowing."""

    kind: Literal["user_count_search"] = "user_count_search"

    location: str
    min_repositories: int
    min_followers: int


class UserAndContribSearchSpec(TaskSpec):
    """User search over a sign-up interval, with contributions in a second interval."""

    kind: Literal["user_and_contrib_search"] = "user_and_contrib_search"

    location: str
    signed_up_after: str
    signed_up_before: str
    min_repositories: int
    min_followers: int
    contrib_from_date: str
    contrib_to_date: str
    page_size: int = Field(gt=0)
    start_cursor: str | None = None


AnyTaskSpec = Annotated[
    Union[
        FocusProjectCandidateSearchSpec,
        FocusOrganizationDetailsSpec,
        UserCountSearchSpec,
        UserAndContribSearchSpec,
    ],
    Field(discriminator="kind"),
]

_ANY_SPEC_ADAPTER: TypeAdapter[Any] = TypeAdapter(AnyTaskSpec)


def parse_task_spec(raw: dict[str, Any]) -> TaskSpec:
    """Build the right spec model from its JSON form (dispatches on `kind`)."""

    spec: TaskSpec = _ANY_SPEC_ADAPTER.validate_python(raw)
    return spec


@dataclass(frozen=True, slots=True)
class PageInfo:
    start_cursor: str | None
    has_next_page: bool
    end_cursor: str | None

    @staticmethod
    def from_json(obj: object) -> PageInfo | None:
        if not isinstance(obj, dict):
            return None
        start = obj.get("startCursor")
        end = obj.get("endCursor")
        return PageInfo(
            start_cursor=start if isinstance(start, str) else None,
            has_next_page=bool(obj.get("hasNextPage")),
            end_cursor=end if isinstance(end, str) else None,
        )


@dataclass(frozen=True, slots=True)
class RateLimitInfo:
    """Quota information returned by the `rateLimit` field of every query."""

    limit: int
    remaining: int
    reset_at: str | None = None
    cost: int | None = None
    used: int | None = None
    node_count: int | None = None

    @staticmethod
    def from_json(obj: object) -> RateLimitInfo | None:
        if not isinstance(obj, dict):
            return None
        limit = obj.get("limit")
        remaining = obj.get("remaining")
        if not isinstance(limit, int) or not isinstance(remaining, int):
            return None

        def _int(v: object) -> int | None:
            return v if isinstance(v, int) else None

        reset_at = obj.get("resetAt")
        return RateLimitInfo(
            limit=limit,
            remaining=remaining,
            reset_at=reset_at if isinstance(reset_at, str) else None,
            cost=_int(obj.get("cost")),
            used=_int(obj.get("used")),
            node_count=_int(obj.get("nodeCount")),
        )

    def is_below(self, stop_percent: float) -> bool:
        """Whether the remaining quota fell below `stop_percent` of the limit."""

        if self.limit <= 0:
            return self.remaining <= 0
        return self.remaining < self.limit * stop_percent / 100


@dataclass(frozen=True, slots=True)
class TaskResult:
    """What a single task execution produced."""

    payload: dict[str, Any]
    page_info: PageInfo | None = None
    rate_limit: RateLimitInfo | None = None


@dataclass(frozen=True, slots=True)
class TaskRunOutputItem:
    """One record of the run output. The JSON shape is consumed by downstream scripts."""

    task_id: str
    result: Any

    def to_json(self) -> dict[str, Any]:
        return {"taskId": self.task_id, "result": self.result}

    @staticmethod
    def from_json(obj: dict[str, Any]) -> TaskRunOutputItem:
        task_id = obj.get("taskId")
        if not isinstance(task_id, str):
            raise ValueError("Invalid output record: missing taskId")
        return TaskRunOutputItem(task_id=task_id, result=obj.get("result"))
