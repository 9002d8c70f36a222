"""User and contribution search.

Searches users of a location by sign-up date, and fetches their contributions
within a second date range in the same call.

Criteria:

- `min_repositories`, `min_followers`
- signed up between `exclude_users_signed_up_before` and `now - min_user_age`
- contributions between `now - contrib_max_age` and `now - contrib_min_age`

The given GitHub token must have the `user:email` and `read:user` scopes.

Seeding uses the user counts of the latest completed user count search
process. Locations without users are skipped; for the others the sign-up
range is searched in periods of

    ceil(search_period_in_days_for_10000_users * 10000 / user_count)

days, so denser locations get shorter periods. Example, with a value of 5:

- 1 user: 50000 days, one task covers the whole range
- 100 users: 500 days
- 100000 users: 1 day

The contribution range is split into `contrib_search_period_parts` parts (a
power of 2) since GitHub returns at most 100 contributed repositories per
range. One task is created per location, sign-up period and contribution part.

A failing task is narrowed down on both ranges at once; once both are single
days, its page size is halved instead.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from github_search_harvester.taskqueue.context import TaskContext
from github_search_harvester.taskqueue.process_files import ProcessFileHelper
from github_search_harvester.tasks.base import Command, Task
from github_search_harvester.tasks.narrowing import split_dual_axis
from github_search_harvester.tasks.periods import (
    format_date,
    parse_date,
    partition_period,
    split_period_into_parts,
    subtract_days,
)
from github_search_harvester.tasks.spec import (
    PageInfo,
    TaskResult,
    TaskRunOutputItem,
    UserAndContribSearchSpec,
)

SIGNUP_RANGE = ("signed_up_after", "signed_up_before")
CONTRIB_RANGE = ("contrib_from_date", "contrib_to_date")


class UserAndContribSearchConfig(BaseSettings):
    """Environment variables use the `HARVESTER_USER_AND_CONTRIB_SEARCH_` prefix."""

    min_repositories: int = Field(default=1, ge=0)
    min_followers: int = Field(default=0, ge=0)
    exclude_users_signed_up_before: str = Field(default="2008-01-01")
    min_user_age: int = Field(default=0, ge=0, description="Days since sign-up")
    contrib_max_age: int = Field(default=365, ge=0)
    contrib_min_age: int = Field(default=0, ge=0)

    user_count_data_directory: Path = Field(
        default=Path("data/user-count-search"),
        description="Data directory of the user count search command",
    )
    search_period_in_days_for_10000_users: float = Field(default=5, gt=0)
    contrib_search_period_parts: int = Field(default=1, gt=0)
    page_size: int = Field(default=100, gt=0, description="Users fetched in one call")

    model_config = SettingsConfigDict(
        env_prefix="HARVESTER_USER_AND_CONTRIB_SEARCH_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("contrib_search_period_parts")
    @classmethod
    def _power_of_two(cls, value: int) -> int:
        if value & (value - 1) != 0:
            raise ValueError("contrib_search_period_parts must be a power of 2")
        return value


def search_period_in_days(period_for_10000_users: float, user_count: int) -> int:
    """Length of the sign-up range searched in one task for a location."""

    return max(1, math.ceil(period_for_10000_users * 10000 / user_count))


class UserAndContribSearchTask(Task[UserAndContribSearchSpec]):
    QUERY = """
query UserAndContribSearch(
    $searchString: String!
    $first: Int!
    $after: String
    $contribFrom: DateTime!
    $contribTo: DateTime!
) {
    rateLimit {
        cost
        limit
        nodeCount
        remaining
        resetAt
        used
    }
    search(type: USER, query: $searchString, first: $first, after: $after) {
        pageInfo {
            startCursor
            hasNextPage
            endCursor
        }
        userCount
        nodes {
            ... on User {
                ...UserAndContribSearchResult
            }
        }
    }
}
fragment UserAndContribSearchResult on User {
    login
    company
    name
    createdAt
    email
    followers {
        totalCount
    }
    gists {
        totalCount
    }
    issueComments {
        totalCount
    }
    issues {
        totalCount
    }
    location
    pullRequests {
        totalCount
    }
    repositories {
        totalCount
    }
    repositoriesContributedTo {
        totalCount
    }
    repositoryDiscussionComments {
        totalCount
    }
    repositoryDiscussions {
        totalCount
    }
    socialAccounts(first: 100) {
        edges {
            node {
                ... on SocialAccount {
                    displayName
                    provider
                    url
                }
            }
        }
    }
    sponsoring {
        totalCount
    }
    sponsors {
        totalCount
    }
    twitterUsername
    websiteUrl
    contributionsCollection(from: $contribFrom, to: $contribTo) {
        startedAt
        endedAt
        totalIssueContributions
        totalCommitContributions
        totalPullRequestContributions
        totalPullRequestReviewContributions
        totalRepositoriesWithContributedIssues
        totalRepositoriesWithContributedCommits
        totalRepositoriesWithContributedPullRequests
        totalRepositoriesWithContributedPullRequestReviews
        issueContributionsByRepository(maxRepositories: 100) {
            contributions {
                totalCount
            }
            repository {
                ...UserSearchRepositoryId
            }
        }
        commitContributionsByRepository(maxRepositories: 100) {
            contributions {
                totalCount
            }
            repository {
                ...UserSearchRepositoryId
            }
        }
        pullRequestContributionsByRepository(maxRepositories: 100) {
            contributions {
                totalCount
            }
            repository {
                ...UserSearchRepositoryId
            }
        }
        pullRequestReviewContributionsByRepository(maxRepositories: 100) {
            contributions {
                totalCount
            }
            repository {
                ...UserSearchRepositoryId
            }
        }
    }
}
fragment UserSearchRepositoryId on Repository {
    nameWithOwner
    isInOrganization
    owner {
        login
    }
}
"""

    def build_query_parameters(self) -> dict[str, Any]:
        spec = self.spec
        search_string = (
            f"location:{spec.location} "
            f"followers:>={spec.min_followers} "
            f"repos:>={spec.min_repositories} "
            # both ends are inclusive
            f"created:{spec.signed_up_after}..{spec.signed_up_before}"
        )
        return {
            "searchString": search_string,
            "first": spec.page_size,
            "after": spec.start_cursor,
            # DateTime scalars must be ISO 8601 with an offset
            "contribFrom": f"{spec.contrib_from_date}T00:00:00+00:00",
            "contribTo": f"{spec.contrib_to_date}T23:59:59+00:00",
        }

    def extract_page_info(self, data: dict[str, Any]) -> PageInfo | None:
        search = data.get("search") or {}
        return PageInfo.from_json(search.get("pageInfo"))

    def has_partial_result(self, data: dict[str, Any]) -> bool:
        search = data.get("search")
        return isinstance(search, dict) and isinstance(search.get("nodes"), list)

    def narrowed_down_tasks(self, context: TaskContext) -> list[UserAndContribSearchSpec] | None:
        if self.spec.start_cursor is not None:
            context.logger.debug(
                "Task has a start cursor; narrowing down the ranges of the originating task",
                extra={"task_id": self.id, "originating_task_id": self.spec.originating_task_id},
            )

        children = split_dual_axis(self.spec, first_axis=SIGNUP_RANGE, second_axis=CONTRIB_RANGE)
        if children is None:
            context.logger.debug(
                "Task can't be narrowed down: single-day ranges and page size below 2",
                extra={"task_id": self.id},
            )
        elif len(children) == 1:
            context.logger.debug(
                "Ranges can't be split anymore; halving the page size",
                extra={"task_id": self.id, "page_size": children[0].page_size},
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


class UserAndContribSearchCommand(Command[UserAndContribSearchSpec]):
    name = "user-and-contrib-search"

    def __init__(
        self,
        config: UserAndContribSearchConfig | None = None,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config or UserAndContribSearchConfig()
        self._now_fn = now_fn or (lambda: datetime.now(tz=UTC))

    def create_task(self, spec: UserAndContribSearchSpec) -> UserAndContribSearchTask:
        return UserAndContribSearchTask(spec)

    def read_user_counts(self) -> dict[str, int]:
        """Return the user count per location from the latest completed user count process."""

        files = ProcessFileHelper(self._config.user_count_data_directory)
        latest = files.latest_process_state_directory()
        if latest is None:
            raise FileNotFoundError(
                f"No user count search process found in {self._config.user_count_data_directory}"
            )

        state = files.read_process_state(latest)
        if state is None:
            raise FileNotFoundError(f"Process {latest} of the user count search has no state file")
        if state.completion_date is None:
            raise ValueError(f"Latest user count search process {latest} is not complete")

        user_counts: dict[str, int] = {}
        for file_name in files.process_output_files(latest):
            for item in files.read_output_items(latest, file_name):
                result = item.result if isinstance(item.result, dict) else {}
                location = result.get("location")
                user_count = result.get("userCount")
                if not isinstance(location, str) or not isinstance(user_count, int):
                    continue
                if user_count < 1:
                    continue
                user_counts[location] = user_count
        return user_counts

    def create_new_queue_items(self, context: TaskContext) -> list[UserAndContribSearchSpec]:
        config = self._config
        today = self._now_fn().date()
        user_counts = self.read_user_counts()

        signup_start = parse_date(config.exclude_users_signed_up_before)
        signup_end = subtract_days(today, config.min_user_age)
        contrib_start = subtract_days(today, config.contrib_max_age)
        contrib_end = subtract_days(today, config.contrib_min_age)
        contrib_ranges = split_period_into_parts(
            contrib_start, contrib_end, config.contrib_search_period_parts
        )

        context.logger.info(
            "Creating a new process state",
            extra={
                "start_date": format_date(signup_start),
                "end_date": format_date(signup_end),
                "contrib_start_date": format_date(contrib_start),
                "contrib_end_date": format_date(contrib_end),
                "location_count": len(user_counts),
            },
        )

        specs: list[UserAndContribSearchSpec] = []
        for location, user_count in user_counts.items():
            period = search_period_in_days(config.search_period_in_days_for_10000_users, user_count)
            for signup_range in partition_period(signup_start, signup_end, period):
                for contrib_range in contrib_ranges:
                    specs.append(
                        UserAndContribSearchSpec(
                            location=location,
                            signed_up_after=format_date(signup_range.start),
                            signed_up_before=format_date(signup_range.end),
                            min_repositories=config.min_repositories,
                            min_followers=config.min_followers,
                            contrib_from_date=format_date(contrib_range.start),
                            contrib_to_date=format_date(contrib_range.end),
                            page_size=config.page_size,
                        )
                    )
        return specs
