"""On-disk layout of processes.

A process is one campaign of a command. It lives in a directory named after
its start time, under the data directory of the command:

    <data_directory>/
        2024-01-15-10-30-00/
            state.json
            output-2024-01-15-10-30-00.json
            output-2024-01-16-08-00-12.json

`state.json` holds the state pools and the bookkeeping of the process. Every
run of the process appends to its own output file, one JSON object per line.
A process can span several runs (after a rate limit stop, for example).
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timedelta
from pathlib import Path

from pydantic import Field

from github_search_harvester.taskqueue.store import TaskStore
from github_search_harvester.tasks.spec import TaskRunOutputItem

logger = logging.getLogger(__name__)

PROCESS_DIRECTORY_FORMAT = "%Y-%m-%d-%H-%M-%S"
STATE_FILE_NAME = "state.json"
OUTPUT_FILE_PREFIX = "output-"
OUTPUT_FILE_SUFFIX = ".json"

_PROCESS_DIRECTORY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}-\d{2}-\d{2}-\d{2}$")


class ProcessState(TaskStore):
    start_date: datetime
    completion_date: datetime | None = None
    completion_error: str | None = None
    output_file_names: list[str] = Field(default_factory=list)


def format_timestamp(value: datetime) -> str:
    return value.strftime(PROCESS_DIRECTORY_FORMAT)


class ProcessFileHelper:
    """Reads and writes the process directories under a data directory."""

    def __init__(self, data_directory: Path) -> None:
        self._data_directory = data_directory

    @property
    def data_directory(self) -> Path:
        return self._data_directory

    def process_directories(self) -> list[str]:
        """Return the names of all process directories, oldest first."""

        if not self._data_directory.is_dir():
            return []
        names = [
            p.name
            for p in self._data_directory.iterdir()
            if p.is_dir() and _PROCESS_DIRECTORY_RE.match(p.name)
        ]
        return sorted(names)

    def latest_process_state_directory(self) -> str | None:
        directories = self.process_directories()
        return directories[-1] if directories else None

    def new_process_directory_name(self, now: datetime) -> str:
        """Name of a process started at `now`, moved to the next free second if taken."""

        started = now
        while (self._data_directory / format_timestamp(started)).exists():
            started += timedelta(seconds=1)
        return format_timestamp(started)

    def create_process_state_directory(self, now: datetime) -> str:
        name = self.new_process_directory_name(now)
        (self._data_directory / name).mkdir(parents=True, exist_ok=False)
        logger.info(
            "Created process state directory",
            extra={"path": str(self._data_directory / name)},
        )
        return name

    def process_state_file(self, process_directory: str) -> Path:
        return self._data_directory / process_directory / STATE_FILE_NAME

    def read_process_state(self, process_directory: str) -> ProcessState | None:
        path = self.process_state_file(process_directory)
        if not path.exists():
            return None
        return ProcessState.model_validate_json(path.read_text(encoding="utf-8"))

    def write_process_state(self, process_directory: str, state: ProcessState) -> None:
        path = self.process_state_file(process_directory)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(
            state.model_dump_json(by_alias=True, indent=2) + "\n", encoding="utf-8"
        )
        tmp.replace(path)

    @staticmethod
    def output_file_name(now: datetime) -> str:
        return f"{OUTPUT_FILE_PREFIX}{format_timestamp(now)}{OUTPUT_FILE_SUFFIX}"

    def output_file(self, process_directory: str, file_name: str) -> Path:
        return self._data_directory / process_directory / file_name

    def process_output_files(self, process_directory: str) -> list[str]:
        directory = self._data_directory / process_directory
        if not directory.is_dir():
            return []
        return sorted(
            p.name
            for p in directory.iterdir()
            if p.is_file()
            and p.name.startswith(OUTPUT_FILE_PREFIX)
            and p.name.endswith(OUTPUT_FILE_SUFFIX)
        )

    def read_output_items(self, process_directory: str, file_name: str) -> list[TaskRunOutputItem]:
        """Read a JSON-lines output file. Blank lines are ignored."""

        path = self.output_file(process_directory, file_name)
        items: list[TaskRunOutputItem] = []
        with path.open(encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                items.append(TaskRunOutputItem.from_json(json.loads(line)))
        return items
