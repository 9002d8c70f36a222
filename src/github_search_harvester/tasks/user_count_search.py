"""User count per location.

Asks GitHub for the number of users in each location that match
`min_repositories` and `min_followers`. The result is an aggregate count: no
pages to continue, nothing to narrow down, and a partial response is never
acceptable.

The locations come from a `locations.json` file shaped like:

    {"Turkey": {"alternatives": ["Turkey", "Türkiye", "Istanbul"]}, ...}

Every alternative becomes one task.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from github_search_harvester.taskqueue.context import TaskContext
from github_search_harvester.taskqueue.errors import GraphQLResponseError
from github_search_harvester.tasks.base import Command, Task
from github_search_harvester.tasks.spec import (
    RateLimitInfo,
    TaskResult,
    TaskRunOutputItem,
    UserCountSearchSpec,
)


class UserCountSearchConfig(BaseSettings):
    """Environment variables use the `HARVESTER_USER_COUNT_SEARCH_` prefix."""

    location_json_file: Path = Field(
        default=Path("locations.json"),
        description="JSON file with the locations to search for",
    )
    min_repositories: int = Field(default=0, ge=0)
    min_followers: int = Field(default=0, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="HARVESTER_USER_COUNT_SEARCH_",
        env_file=".env",
        extra="ignore",
    )


def read_locations(path: Path) -> list[str]:
    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"{path} must contain a JSON object")

    locations: list[str] = []
    for key, entry in raw.items():
        alternatives = entry.get("alternatives") if isinstance(entry, dict) else None
        if not isinstance(alternatives, list):
            raise ValueError(f"Location {key!r} in {path} has no alternatives list")
        locations.extend(str(a) for a in alternatives)
    return locations


class UserCountSearchTask(Task[UserCountSearchSpec]):
    QUERY = """
query UserCountSearch($searchString: String!) {
    rateLimit {
        cost
        limit
        nodeCount
        remaining
        resetAt
        used
    }
    search(type: USER, query: $searchString, first: 1) {
        userCount
    }
}
"""

    def build_query_parameters(self) -> dict[str, Any]:
        search_string = (
            f"location:{self.spec.location} "
            f"repos:>={self.spec.min_repositories} "
            f"followers:>={self.spec.min_followers}"
        )
        return {"searchString": search_string}

    def parse_result(self, data: dict[str, Any]) -> TaskResult:
        search = data.get("search")
        if not isinstance(search, dict) or not isinstance(search.get("userCount"), int):
            raise GraphQLResponseError("Unexpected user count response: missing search.userCount")
        return TaskResult(payload=data, rate_limit=RateLimitInfo.from_json(data.get("rateLimit")))

    def next_task(self, context: TaskContext, result: TaskResult) -> None:
        return None

    def narrowed_down_tasks(self, context: TaskContext) -> None:
        return None

    def save_output(self, context: TaskContext, result: TaskResult) -> None:
        context.logger.debug("Saving output of task", extra={"task_id": self.id})
        # the API doesn't echo the location back, it comes from the spec
        context.current_run_output.append(
            TaskRunOutputItem(
                task_id=self.id,
                result={
                    "location": self.spec.location,
                    "userCount": result.payload["search"]["userCount"],
                },
            )
        )

    def should_record_as_error(self, error: Exception) -> bool:
        return True


class UserCountSearchCommand(Command[UserCountSearchSpec]):
    name = "user-count-search"

    def __init__(self, config: UserCountSearchConfig | None = None) -> None:
        self._config = config or UserCountSearchConfig()

    def create_task(self, spec: UserCountSearchSpec) -> UserCountSearchTask:
        return UserCountSearchTask(spec)

    def create_new_queue_items(self, context: TaskContext) -> list[UserCountSearchSpec]:
        config = self._config
        locations = read_locations(config.location_json_file)

        context.logger.info(
            "Creating a new process state",
            extra={
                "min_repositories": config.min_repositories,
                "min_followers": config.min_followers,
                "location_count": len(locations),
            },
        )

        return [
            UserCountSearchSpec(
                location=location,
                min_repositories=config.min_repositories,
                min_followers=config.min_followers,
            )
            for location in locations
        ]
