"""Focus project candidate search.

Searches for public repositories that can be used to identify focus
organizations and projects:

- public, not a template, not archived
- at least `min_stars` stars, `min_forks` forks and `min_size_in_kb` size
- pushed to within the last `max_inactivity_days` days
- created between `exclude_repositories_created_before` and
  `now - min_age_in_days`

The creation date range is searched in `search_period_in_days` long periods,
`page_size` repositories per call. Both are tuning knobs against GitHub API
timeouts: a failing period is narrowed down by halving its creation range.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from github_search_harvester.taskqueue.context import TaskContext
from github_search_harvester.tasks.base import Command, Task
from github_search_harvester.tasks.narrowing import split_single_axis
from github_search_harvester.tasks.periods import (
    format_date,
    parse_date,
    partition_period,
    subtract_days,
)
from github_search_harvester.tasks.spec import (
    FocusProjectCandidateSearchSpec,
    PageInfo,
    TaskResult,
    TaskRunOutputItem,
)

CREATED_RANGE = ("created_after", "created_before")


class FocusProjectCandidateSearchConfig(BaseSettings):
    """Search criteria and tuning of the focus project candidate search.

    Environment variables use the `HARVESTER_FOCUS_PROJECT_SEARCH_` prefix,
    e.g. `HARVESTER_FOCUS_PROJECT_SEARCH_MIN_STARS=100`.
    """

    exclude_repositories_created_before: str = Field(
        default="2008-01-01",
        description="Repositories created before this date (YYYY-MM-DD) are not searched",
    )
    min_age_in_days: int = Field(default=365, ge=0)
    max_inactivity_days: int = Field(default=90, ge=0)
    min_stars: int = Field(default=50, ge=0)
    min_forks: int = Field(default=50, ge=0)
    min_size_in_kb: int = Field(default=1000, ge=0)

    search_period_in_days: int = Field(
        default=5,
        gt=0,
        description="Length of the creation date range of one initial search task",
    )
    page_size: int = Field(default=100, gt=0, description="Repositories fetched in one call")

    model_config = SettingsConfigDict(
        env_prefix="HARVESTER_FOCUS_PROJECT_SEARCH_",
        env_file=".env",
        extra="ignore",
    )


class FocusProjectCandidateSearchTask(Task[FocusProjectCandidateSearchSpec]):
    QUERY = """
query FocusProjectCandidateSearch($searchString: String!, $first: Int!, $after: String) {
    rateLimit {
        cost
        limit
        nodeCount
        remaining
        resetAt
        used
    }
    search(type: REPOSITORY, query: $searchString, first: $first, after: $after) {
        pageInfo {
            startCursor
            hasNextPage
            endCursor
        }
        repositoryCount
        nodes {
            ...RepositorySummary
        }
    }
}
fragment RepositorySummary on Repository {
    nameWithOwner
    isInOrganization
    owner {
        login
    }
    forkCount
    stargazerCount
    pullRequests {
        totalCount
    }
    issues {
        totalCount
    }
    mentionableUsers {
        totalCount
    }
    watchers {
        totalCount
    }
}
"""

    def build_query_parameters(self) -> dict[str, Any]:
        spec = self.spec
        search_string = (
            "is:public template:false archived:false "
            f"stars:>={spec.min_stars} "
            f"forks:>={spec.min_forks} "
            f"size:>={spec.min_size_in_kb} "
            f"pushed:>={spec.has_activity_after} "
            # both ends are inclusive
            f"created:{spec.created_after}..{spec.created_before}"
        )
        return {
            "searchString": search_string,
            "first": spec.page_size,
            "after": spec.start_cursor,
        }

    def extract_page_info(self, data: dict[str, Any]) -> PageInfo | None:
        search = data.get("search") or {}
        return PageInfo.from_json(search.get("pageInfo"))

    def has_partial_result(self, data: dict[str, Any]) -> bool:
        search = data.get("search")
        return isinstance(search, dict) and isinstance(search.get("nodes"), list)

    def narrowed_down_tasks(
        self, context: TaskContext
    ) -> list[FocusProjectCandidateSearchSpec] | None:
        if self.spec.start_cursor is not None:
            context.logger.debug(
                "Task has a start cursor; narrowing down the range of the originating task",
                extra={"task_id": self.id, "originating_task_id": self.spec.originating_task_id},
            )

        children = split_single_axis(self.spec, axis=CREATED_RANGE)
        if children is None:
            context.logger.debug(
                "Task can't be narrowed down: its range is a single day",
                extra={"task_id": self.id},
            )
        return children

    def save_output(self, context: TaskContext, result: TaskResult) -> None:
        search = result.payload.get("search") or {}
        nodes = search.get("nodes") or []
        context.logger.debug(
            "Saving output of task", extra={"task_id": self.id, "node_count": len(nodes)}
        )

        for node in nodes:
            # null nodes come from partial responses
            if node is not None:
                context.current_run_output.append(TaskRunOutputItem(task_id=self.id, result=node))


class FocusProjectCandidateSearchCommand(Command[FocusProjectCandidateSearchSpec]):
    name = "focus-project-candidate-search"

    def __init__(
        self,
        config: FocusProjectCandidateSearchConfig | None = None,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config or FocusProjectCandidateSearchConfig()
        self._now_fn = now_fn or (lambda: datetime.now(tz=UTC))

    def create_task(self, spec: FocusProjectCandidateSearchSpec) -> FocusProjectCandidateSearchTask:
        return FocusProjectCandidateSearchTask(spec)

    def create_new_queue_items(self, context: TaskContext) -> list[FocusProjectCandidateSearchSpec]:
        config = self._config
        today = self._now_fn().date()

        start_date = parse_date(config.exclude_repositories_created_before)
        end_date = subtract_days(today, config.min_age_in_days)
        has_activity_after = format_date(subtract_days(today, config.max_inactivity_days))

        context.logger.info(
            "Creating a new process state",
            extra={
                "start_date": format_date(start_date),
                "end_date": format_date(end_date),
                "has_activity_after": has_activity_after,
            },
        )

        return [
            FocusProjectCandidateSearchSpec(
                min_stars=config.min_stars,
                min_forks=config.min_forks,
                min_size_in_kb=config.min_size_in_kb,
                has_activity_after=has_activity_after,
                created_after=format_date(period.start),
                created_before=format_date(period.end),
                page_size=config.page_size,
            )
            for period in partition_period(start_date, end_date, config.search_period_in_days)
        ]
