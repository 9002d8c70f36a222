"""Unit tests for settings loading."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from github_search_harvester.config import HarvesterSettings, LocalSettings, QueueSettings

_ENV_VARS = (
    "HARVESTER_GITHUB_TOKEN",
    "GITHUB_BASE_URL",
    "LOG_LEVEL",
    "HARVESTER_DATA_DIRECTORY",
    "HARVESTER_QUEUE_CONCURRENCY",
    "HARVESTER_QUEUE_RETRY_COUNT",
)


@pytest.fixture(autouse=True)
def _clean_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def test_settings_loads_from_dotenv(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text(
        "\n".join(
            [
                "HARVESTER_GITHUB_TOKEN=test-token",
                "LOG_LEVEL=DEBUG",
                "HARVESTER_DATA_DIRECTORY=/var/harvester",
                "",
            ]
        ),
        encoding="utf-8",
    )

    settings = HarvesterSettings()

    assert settings.github_token == "test-token"
    assert settings.log_level == "DEBUG"
    assert settings.github_base_url == "https://api.github.com"
    assert settings.command_data_directory("user-count-search") == Path(
        "/var/harvester/user-count-search"
    )


def test_settings_default_data_directory(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HARVESTER_GITHUB_TOKEN", "test-token")

    settings = HarvesterSettings()

    assert settings.data_directory == Path("data")


def test_settings_require_token() -> None:
    with pytest.raises(ValidationError, match="HARVESTER_GITHUB_TOKEN"):
        HarvesterSettings()


def test_local_settings_do_not_need_a_token() -> None:
    settings = LocalSettings()

    assert settings.log_level == "INFO"
    assert settings.command_data_directory("user-count-search") == Path("data/user-count-search")


def test_queue_settings_defaults() -> None:
    settings = QueueSettings()

    assert settings.concurrency == 6
    assert settings.per_task_timeout_seconds == 30
    assert settings.interval_seconds == 10
    assert settings.interval_cap == 4
    assert settings.retry_count == 3
    assert settings.rate_limit_stop_percent == 10


def test_queue_settings_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HARVESTER_QUEUE_CONCURRENCY", "2")
    monkeypatch.setenv("HARVESTER_QUEUE_RETRY_COUNT", "0")

    settings = QueueSettings()

    assert settings.concurrency == 2
    assert settings.retry_count == 0


def test_queue_settings_reject_zero_concurrency(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HARVESTER_QUEUE_CONCURRENCY", "0")

    with pytest.raises(ValidationError):
        QueueSettings()
