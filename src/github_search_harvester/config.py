"""Configuration for the harvester.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

To avoid collisions with other tools that may also use `GITHUB_TOKEN`, this
project uses a dedicated token variable: `HARVESTER_GITHUB_TOKEN`.

Search criteria of the task families are configured by their own settings
models (see `github_search_harvester.tasks`).
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LocalSettings(BaseSettings):
    """Settings of the subcommands that only work on local process files.

    Environment variables:
    - LOG_LEVEL                 (optional)
    - HARVESTER_DATA_DIRECTORY  (optional)
    """

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    data_directory: Path = Field(
        default=Path("data"),
        validation_alias="HARVESTER_DATA_DIRECTORY",
        description="Directory holding one subdirectory of processes per command",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )

    def command_data_directory(self, command_name: str) -> Path:
        """Directory where the processes of a command are stored."""

        return self.data_directory / command_name


class HarvesterSettings(LocalSettings):
    """Settings of the subcommands that call the GitHub API.

    Environment variables, on top of `LocalSettings`:
    - HARVESTER_GITHUB_TOKEN
    - GITHUB_BASE_URL           (optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `HarvesterSettings(_env_file=path_to_env)`.
    """

    github_token: str = Field(
        default="",
        validation_alias="HARVESTER_GITHUB_TOKEN",
        description="GitHub token used for API authentication",
    )
    github_base_url: str = Field(
        default="https://api.github.com",
        validation_alias="GITHUB_BASE_URL",
        description="GitHub API base URL (useful for GitHub Enterprise)",
    )

    @model_validator(mode="after")
    def _require_github_auth(self) -> HarvesterSettings:
        if not self.github_token.strip():
            raise ValueError("HARVESTER_GITHUB_TOKEN is required")
        return self


class QueueSettings(BaseSettings):
    """Task queue tuning. Environment variables use the `HARVESTER_QUEUE_` prefix."""

    concurrency: int = Field(default=6, gt=0, description="Tasks running at the same time")
    per_task_timeout_seconds: float = Field(
        default=30,
        ge=0,
        description="A task running longer is cancelled and counted as failed (0 disables)",
    )
    interval_seconds: float = Field(default=10, ge=0)
    interval_cap: int = Field(
        default=4,
        ge=0,
        description="Tasks started at most per interval (0 disables the limit)",
    )
    retry_count: int = Field(
        default=3,
        ge=0,
        description="Retries of a failing task before it is narrowed down",
    )
    rate_limit_stop_percent: float = Field(
        default=10,
        ge=0,
        le=100,
        description="Stop dispatching when the remaining quota drops below this percentage",
    )

    model_config = SettingsConfigDict(
        env_prefix="HARVESTER_QUEUE_",
        env_file=".env",
        extra="ignore",
    )
