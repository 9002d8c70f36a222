"""Unit tests for the CLI."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest
from conftest import focus_spec

from github_search_harvester import main as cli
from github_search_harvester.taskqueue.errors import SecondaryRateLimitError
from github_search_harvester.taskqueue.process import ProcessRunResult
from github_search_harvester.taskqueue.process_files import ProcessFileHelper, ProcessState
from github_search_harvester.taskqueue.store import ErroredTask

START = datetime(2023, 1, 15, 12, 0, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def _env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HARVESTER_GITHUB_TOKEN", "test-token")
    monkeypatch.delenv("HARVESTER_DATA_DIRECTORY", raising=False)


def _write_state(data_directory: Path, state: ProcessState) -> str:
    files = ProcessFileHelper(data_directory)
    name = files.create_process_state_directory(state.start_date)
    files.write_process_state(name, state)
    return name


def _args(subcommand: str, data_directory: Path, *extra: str) -> list[str]:
    return [
        subcommand,
        "--command",
        "focus-project-candidate-search",
        "--data-directory",
        str(data_directory),
        *extra,
    ]


def test_missing_token_is_a_configuration_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.delenv("HARVESTER_GITHUB_TOKEN")

    assert cli.main(_args("execute", tmp_path)) == 2
    assert "HARVESTER_GITHUB_TOKEN is required" in capsys.readouterr().err


def test_local_subcommands_do_not_need_a_token(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("HARVESTER_GITHUB_TOKEN")
    data = tmp_path / "data"
    _write_state(data, ProcessState(start_date=START, completion_date=START))

    assert cli.main(_args("latest-process-complete", data)) == 0
    assert cli.main(_args("requeue-errored", data)) == 0


def test_unknown_command_name_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["execute", "--command", "no-such-command"])

    assert excinfo.value.code == 2


def test_latest_process_complete(tmp_path: Path) -> None:
    data = tmp_path / "data"

    assert cli.main(_args("latest-process-complete", data)) == 5

    _write_state(data, ProcessState(start_date=START))
    assert cli.main(_args("latest-process-complete", data)) == 1

    _write_state(
        data,
        ProcessState(start_date=datetime(2023, 1, 16, tzinfo=UTC), completion_date=START),
    )
    assert cli.main(_args("latest-process-complete", data)) == 0


def test_requeue_errored(tmp_path: Path) -> None:
    data = tmp_path / "data"
    state = ProcessState(start_date=START, completion_date=START)
    spec = focus_spec("2023-01-01", "2023-01-01", task_id="failed")
    state.errored["failed"] = ErroredTask(spec=spec, retry_count=3)
    name = _write_state(data, state)

    assert cli.main(_args("requeue-errored", data)) == 0

    saved = ProcessFileHelper(data).read_process_state(name)
    assert saved is not None
    assert list(saved.unresolved) == ["failed"]
    assert saved.errored == {}
    assert saved.completion_date is None


def test_execute_passes_queue_options(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict[str, Any]] = []

    def fake_run_process(**kwargs: Any) -> ProcessRunResult:
        calls.append(kwargs)
        return ProcessRunResult(
            process_directory="2023-01-15-12-00-00",
            state=ProcessState(start_date=START, completion_date=START),
            complete=True,
        )

    monkeypatch.setattr(cli, "run_process", fake_run_process)
    monkeypatch.setenv("HARVESTER_QUEUE_RETRY_COUNT", "5")

    rc = cli.main(
        _args("execute", tmp_path / "data", "--concurrency", "2", "--rate-limit-stop-percent", "20")
    )

    assert rc == 0
    (kwargs,) = calls
    assert kwargs["options"].concurrency == 2
    assert kwargs["options"].retry_count == 5
    assert kwargs["rate_limit_stop_percent"] == 20
    assert kwargs["files"].data_directory == tmp_path / "data"
    assert kwargs["command"].name == "focus-project-candidate-search"


def test_execute_incomplete_process(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run_process(**kwargs: Any) -> ProcessRunResult:
        state = ProcessState(start_date=START)
        state.add_unresolved([focus_spec("2023-01-01", "2023-01-01")])
        return ProcessRunResult(process_directory="p", state=state, complete=False)

    monkeypatch.setattr(cli, "run_process", fake_run_process)

    assert cli.main(_args("execute", tmp_path / "data")) == 4


def test_execute_secondary_rate_limit(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run_process(**kwargs: Any) -> ProcessRunResult:
        raise SecondaryRateLimitError("secondary rate limit")

    monkeypatch.setattr(cli, "run_process", fake_run_process)

    assert cli.main(_args("execute", tmp_path / "data")) == 1


def test_data_directory_defaults_to_command_subdirectory(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("HARVESTER_DATA_DIRECTORY", str(tmp_path / "root"))
    _write_state(
        tmp_path / "root" / "user-count-search",
        ProcessState(start_date=START, completion_date=START),
    )

    rc = cli.main(["latest-process-complete", "--command", "user-count-search"])

    assert rc == 0
