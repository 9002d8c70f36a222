#!/usr/bin/env python3
"""Programmatic user count search example.

This demonstrates using the harvester components directly:

* load settings from `.env`
* run (or resume) a user count search process
* print the user count of every location found in the output

Locations are passed as a JSON file (`{"Turkey": {"alternatives": ["Turkey", "Istanbul"]}}`).
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Sequence

from github_search_harvester.config import HarvesterSettings, QueueSettings
from github_search_harvester.github.client import GitHubGraphQLClient
from github_search_harvester.logging import configure_logging
from github_search_harvester.taskqueue.engine import QueueOptions
from github_search_harvester.taskqueue.process import run_process
from github_search_harvester.taskqueue.process_files import ProcessFileHelper
from github_search_harvester.tasks.user_count_search import (
    UserCountSearchCommand,
    UserCountSearchConfig,
)


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Count GitHub users per location.")
    parser.add_argument("--locations", required=True, help="Path of the locations JSON file")
    parser.add_argument("--min-repositories", type=int, default=0)
    parser.add_argument("--min-followers", type=int, default=0)
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = HarvesterSettings()
    queue_settings = QueueSettings()
    configure_logging(settings.log_level)

    command = UserCountSearchCommand(
        UserCountSearchConfig(
            location_json_file=Path(args.locations),
            min_repositories=args.min_repositories,
            min_followers=args.min_followers,
        )
    )
    files = ProcessFileHelper(settings.command_data_directory(command.name))
    client = GitHubGraphQLClient(token=settings.github_token, base_url=settings.github_base_url)

    try:
        result = run_process(
            command=command,
            files=files,
            graphql=client.graphql,
            options=QueueOptions(
                concurrency=queue_settings.concurrency,
                retry_count=queue_settings.retry_count,
            ),
            rate_limit_stop_percent=queue_settings.rate_limit_stop_percent,
        )
    finally:
        client.close()

    # runs that produced nothing leave no output file
    for file_name in files.process_output_files(result.process_directory):
        for item in files.read_output_items(result.process_directory, file_name):
            print(f"{item.result['location']}: {item.result['userCount']}")

    print(f"Process {result.process_directory} complete: {result.complete}")
    return 0 if result.complete else 4


if __name__ == "__main__":
    raise SystemExit(main())
