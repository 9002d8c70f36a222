"""GitHub GraphQL transport.

One `graphql()` call is one POST to the GraphQL endpoint. Failures are
classified so the task queue can tell them apart:

- `SecondaryRateLimitError`: 403/429 from GitHub's abuse detection
- `PrimaryRateLimitError`: hourly quota used up (HTTP headers or `RATE_LIMITED` errors)
- `PartialResponseError`: `errors` together with `data`
- `GraphQLResponseError`: `errors` without `data`
- `requests.HTTPError` and other `requests` exceptions: everything else
"""

from __future__ import annotations

import logging
import threading
from typing import Any
from urllib.parse import urlparse, urlunparse

import requests

from github_search_harvester import __version__
from github_search_harvester.taskqueue.errors import (
    GraphQLResponseError,
    PartialResponseError,
    PrimaryRateLimitError,
    SecondaryRateLimitError,
    TaskCancelledError,
)

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT_SECONDS = 30


def _error_messages(errors: object) -> str:
    messages: list[str] = []
    if isinstance(errors, list):
        for item in errors:
            if isinstance(item, dict):
                msg = item.get("message")
                if isinstance(msg, str):
                    messages.append(msg)
    return "; ".join(messages) if messages else "Unknown GraphQL error"


def _is_rate_limited(errors: object) -> bool:
    if not isinstance(errors, list):
        return False
    return any(isinstance(e, dict) and e.get("type") == "RATE_LIMITED" for e in errors)


class GitHubGraphQLClient:
    """Minimal GitHub GraphQL client over a `requests.Session`."""

    def __init__(
        self,
        *,
        token: str,
        base_url: str = "https://api.github.com",
        session: requests.Session | None = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        if not token:
            raise ValueError("GitHub token is required")

        self._rest_base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "User-Agent": f"github-search-harvester/{__version__}",
            }
        )

    def close(self) -> None:
        self._session.close()

    def graphql_url(self) -> str:
        """Derive the GitHub GraphQL endpoint from the configured REST base URL.

        GitHub.com:
            REST: https://api.github.com
            GQL:  https://api.github.com/graphql

        GitHub Enterprise typically exposes REST as:
            https://github.example.com/api/v3
        and GraphQL as:
            https://github.example.com/api/graphql
        """

        parsed = urlparse(self._rest_base_url)
        path = parsed.path.rstrip("/")

        if path.endswith("/api/v3"):
            path = path[: -len("/api/v3")] + "/api/graphql"
        elif path.endswith("/api"):
            path = path[: -len("/api")] + "/api/graphql"
        elif path == "":
            path = "/graphql"
        else:
            path = path + "/graphql"

        return urlunparse(parsed._replace(path=path))

    def graphql(
        self,
        query: str,
        variables: dict[str, Any],
        cancel_event: threading.Event | None = None,
    ) -> dict[str, Any]:
        """Run one query and return its `data`.

        `requests` can't interrupt a request in flight; the cancel event is
        checked before sending and once the response is in. The request
        timeout bounds how long a cancelled call can linger.
        """

        if cancel_event is not None and cancel_event.is_set():
            raise TaskCancelledError("GraphQL call cancelled before it was sent")

        resp = self._session.post(
            self.graphql_url(),
            json={"query": query, "variables": variables},
            timeout=self._timeout,
        )

        if cancel_event is not None and cancel_event.is_set():
            raise TaskCancelledError("GraphQL call cancelled")

        self._raise_for_rate_limit(resp)
        resp.raise_for_status()

        payload: dict[str, Any] = resp.json()
        data = payload.get("data")
        errors = payload.get("errors")
        if errors:
            message = _error_messages(errors)
            if data:
                raise PartialResponseError(message, data=data, errors=errors)
            if _is_rate_limited(errors):
                raise PrimaryRateLimitError(message)
            raise GraphQLResponseError(f"GitHub GraphQL error: {message}", errors=errors)

        if not isinstance(data, dict):
            raise GraphQLResponseError("GitHub GraphQL response has no data")
        return data

    @staticmethod
    def _raise_for_rate_limit(resp: requests.Response) -> None:
        if resp.status_code not in (403, 429):
            return

        text = resp.text or ""
        retry_after = resp.headers.get("retry-after")
        if "secondary rate limit" in text.lower() or retry_after is not None:
            logger.warning(
                "Secondary rate limit response",
                extra={"status_code": resp.status_code, "retry_after": retry_after},
            )
            raise SecondaryRateLimitError(
                f"Secondary rate limit hit (HTTP {resp.status_code})",
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )

        if resp.headers.get("x-ratelimit-remaining") == "0":
            raise PrimaryRateLimitError(
                f"Primary rate limit hit (HTTP {resp.status_code})",
                reset_at=resp.headers.get("x-ratelimit-reset"),
            )
