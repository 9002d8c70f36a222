"""Focus organization details.

Lists the public repositories of the focus organizations identified earlier.
The organization names come from `focus-organizations.json`, written by the
extraction step for the latest focus project candidate search process.

The given GitHub token must have the `read:org` scope.

There is no scope axis to split: a failing task is narrowed down by halving
its page size, keeping its cursor. Repositories fetched twice that way are
deduplicated downstream.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from github_search_harvester.taskqueue.context import TaskContext
from github_search_harvester.taskqueue.process_files import ProcessFileHelper
from github_search_harvester.tasks.base import Command, Task
from github_search_harvester.tasks.narrowing import halve_page_size
from github_search_harvester.tasks.spec import (
    FocusOrganizationDetailsSpec,
    PageInfo,
    TaskResult,
    TaskRunOutputItem,
)

FOCUS_ORGANIZATIONS_FILE_NAME = "focus-organizations.json"


class FocusOrganizationDetailsConfig(BaseSettings):
    """Environment variables use the `HARVESTER_FOCUS_ORGANIZATION_DETAILS_` prefix."""

    focus_project_candidate_search_data_directory: Path = Field(
        default=Path("data/focus-project-candidate-search"),
        description="Data directory of the focus project candidate search command",
    )
    focus_project_extract_files_directory: Path = Field(
        default=Path("data/focus-project-extract"),
        description=(
            "Directory of the extraction output; holds one subdirectory per candidate "
            "search process, each with a focus-organizations.json file"
        ),
    )
    page_size: int = Field(default=25, gt=0, description="Repositories fetched in one call")

    model_config = SettingsConfigDict(
        env_prefix="HARVESTER_FOCUS_ORGANIZATION_DETAILS_",
        env_file=".env",
        extra="ignore",
    )


class FocusOrganizationDetailsTask(Task[FocusOrganizationDetailsSpec]):
    QUERY = """
query FocusOrganizationDetails($orgName: String!, $first: Int!, $after: String) {
    rateLimit {
        cost
        limit
        nodeCount
        remaining
        resetAt
        used
    }
    organization(login: $orgName) {
        login
        name
        createdAt
        membersWithRole {
            totalCount
        }
        repositories(privacy: PUBLIC, first: $first, after: $after) {
            pageInfo {
                endCursor
                hasNextPage
            }
            nodes {
                ...RepositorySummary
            }
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
    discussions {
        totalCount
    }
    createdAt
    isPrivate
    pushedAt
    visibility
    primaryLanguage {
        name
    }
    languages(first: 100) {
        edges {
            size
            node {
                name
            }
        }
    }
}
"""

    def build_query_parameters(self) -> dict[str, Any]:
        return {
            "orgName": self.spec.org_name,
            "first": self.spec.page_size,
            "after": self.spec.start_cursor,
        }

    def extract_page_info(self, data: dict[str, Any]) -> PageInfo | None:
        organization = data.get("organization") or {}
        repositories = organization.get("repositories") or {}
        return PageInfo.from_json(repositories.get("pageInfo"))

    def has_partial_result(self, data: dict[str, Any]) -> bool:
        organization = data.get("organization")
        return isinstance(organization, dict) and isinstance(
            organization.get("repositories"), dict
        )

    def narrowed_down_tasks(
        self, context: TaskContext
    ) -> list[FocusOrganizationDetailsSpec] | None:
        children = halve_page_size(self.spec)
        if children is None:
            context.logger.debug(
                "Task can't be narrowed down: page size is too small",
                extra={"task_id": self.id, "page_size": self.spec.page_size},
            )
        return children

    def save_output(self, context: TaskContext, result: TaskResult) -> None:
        organization = result.payload.get("organization")
        if not isinstance(organization, dict):
            context.logger.debug("No organization in the result", extra={"task_id": self.id})
            return

        repositories = organization.get("repositories")
        if isinstance(repositories, dict) and isinstance(repositories.get("nodes"), list):
            # null nodes come from partial responses
            nodes = [n for n in repositories["nodes"] if n is not None]
            organization = {**organization, "repositories": {**repositories, "nodes": nodes}}

        context.current_run_output.append(TaskRunOutputItem(task_id=self.id, result=organization))


class FocusOrganizationDetailsCommand(Command[FocusOrganizationDetailsSpec]):
    name = "focus-organization-details"

    def __init__(self, config: FocusOrganizationDetailsConfig | None = None) -> None:
        self._config = config or FocusOrganizationDetailsConfig()

    def create_task(self, spec: FocusOrganizationDetailsSpec) -> FocusOrganizationDetailsTask:
        return FocusOrganizationDetailsTask(spec)

    def _read_organization_names(self) -> list[str]:
        search_files = ProcessFileHelper(self._config.focus_project_candidate_search_data_directory)
        latest = search_files.latest_process_state_directory()
        if latest is None:
            raise FileNotFoundError(
                "No focus project candidate search process found in "
                f"{self._config.focus_project_candidate_search_data_directory}"
            )

        extract_directory = self._config.focus_project_extract_files_directory
        path = extract_directory / latest / FOCUS_ORGANIZATIONS_FILE_NAME
        raw = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(raw, list) or not all(isinstance(n, str) for n in raw):
            raise ValueError(f"{path} must contain a JSON list of organization names")
        return raw

    def create_new_queue_items(self, context: TaskContext) -> list[FocusOrganizationDetailsSpec]:
        org_names = self._read_organization_names()
        context.logger.info(
            "Creating a new process state", extra={"organization_count": len(org_names)}
        )
        return [
            FocusOrganizationDetailsSpec(org_name=org_name, page_size=self._config.page_size)
            for org_name in org_names
        ]
