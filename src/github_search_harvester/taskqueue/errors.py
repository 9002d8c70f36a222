"""Exception hierarchy for search execution.

The task queue distinguishes three kinds of failures raised by a task:

- rate limit errors, which stop the run instead of failing one task
- partial responses, which a task may decide to tolerate
- everything else, which counts towards the retries of the task
"""

from __future__ import annotations

from typing import Any


class HarvesterError(Exception):
    """Base exception for all harvester errors."""


class GraphQLResponseError(HarvesterError):
    """The GraphQL endpoint answered with an `errors` list."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class PartialResponseError(GraphQLResponseError):
    """The response carries errors *and* data.

    GitHub does this when some nodes of a result can't be resolved (for example
    because of IP allow-list restrictions of an organization); those nodes come
    back as `null` while the rest of the payload is valid.
    """

    def __init__(
        self,
        message: str,
        data: dict[str, Any],
        errors: list[dict[str, Any]] | None = None,
    ) -> None:
        super().__init__(message, errors)
        self.data = data


class RateLimitError(HarvesterError):
    """Base class for rate limit errors."""


class PrimaryRateLimitError(RateLimitError):
    """The hourly quota is used up (or below the configured stop threshold)."""

    def __init__(self, message: str, reset_at: str | None = None) -> None:
        super().__init__(message)
        self.reset_at = reset_at


class SecondaryRateLimitError(RateLimitError):
    """GitHub's abuse detection throttled us. The whole run must stop."""

    def __init__(self, message: str, retry_after: int | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class TaskCancelledError(HarvesterError):
    """Raised by a task that observed its cancel signal."""


class TaskTimeoutError(HarvesterError):
    """A task did not finish within the per-task timeout."""
