"""Factory for creating task family commands."""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from github_search_harvester.tasks.base import Command
from github_search_harvester.tasks.focus_project_search import FocusProjectCandidateSearchCommand
from github_search_harvester.tasks.organization_details import FocusOrganizationDetailsCommand
from github_search_harvester.tasks.user_and_contrib_search import UserAndContribSearchCommand
from github_search_harvester.tasks.user_count_search import UserCountSearchCommand

logger = logging.getLogger(__name__)

COMMAND_NAMES: tuple[str, ...] = (
    FocusProjectCandidateSearchCommand.name,
    FocusOrganizationDetailsCommand.name,
    UserCountSearchCommand.name,
    UserAndContribSearchCommand.name,
)


class CommandFactory:
    """Factory for creating command instances."""

    @staticmethod
    def create(name: str, *, now_fn: Callable[[], datetime] | None = None) -> Command[Any]:
        """Create the command of a task family.

        The configuration of the command is loaded from the environment.

        Args:
            name: Command name, one of `COMMAND_NAMES`.
            now_fn: Clock used for the date ranges of new processes.

        Returns:
            Configured command instance.

        Raises:
            ValueError: If the command name is not supported.
        """
        logger.info("Creating command", extra={"command": name})

        if name == FocusProjectCandidateSearchCommand.name:
            return FocusProjectCandidateSearchCommand(now_fn=now_fn)
        elif name == FocusOrganizationDetailsCommand.name:
            return FocusOrganizationDetailsCommand()
        elif name == UserCountSearchCommand.name:
            return UserCountSearchCommand()
        elif name == UserAndContribSearchCommand.name:
            return UserAndContribSearchCommand(now_fn=now_fn)
        else:
            raise ValueError(f"Unsupported command: {name}")
