"""Unit tests for inclusive day period arithmetic."""

from __future__ import annotations

from datetime import date

import pytest

from github_search_harvester.tasks.periods import (
    Period,
    days_in_period,
    partition_period,
    split_period_into_halves,
    split_period_into_parts,
)


def test_days_in_period_returns_interval_starts() -> None:
    assert days_in_period(date(2023, 1, 1), date(2023, 1, 10), 5) == [
        date(2023, 1, 1),
        date(2023, 1, 6),
    ]
    assert days_in_period(date(2023, 1, 1), date(2023, 1, 11), 5) == [
        date(2023, 1, 1),
        date(2023, 1, 6),
        date(2023, 1, 11),
    ]


def test_days_in_period_rejects_non_positive_period() -> None:
    with pytest.raises(ValueError):
        days_in_period(date(2023, 1, 1), date(2023, 1, 10), 0)


def test_partition_period_is_gap_free_and_clipped() -> None:
    periods = partition_period(date(2023, 1, 1), date(2023, 1, 12), 5)

    assert periods == [
        Period(date(2023, 1, 1), date(2023, 1, 5)),
        Period(date(2023, 1, 6), date(2023, 1, 10)),
        Period(date(2023, 1, 11), date(2023, 1, 12)),
    ]


def test_partition_period_with_empty_range() -> None:
    assert partition_period(date(2023, 1, 2), date(2023, 1, 1), 5) == []


@pytest.mark.parametrize(
    ("start", "end", "expected"),
    [
        (
            date(2023, 1, 1),
            date(2023, 1, 10),
            [(date(2023, 1, 1), date(2023, 1, 5)), (date(2023, 1, 6), date(2023, 1, 10))],
        ),
        (
            date(2023, 1, 1),
            date(2023, 1, 11),
            [(date(2023, 1, 1), date(2023, 1, 6)), (date(2023, 1, 7), date(2023, 1, 11))],
        ),
        (
            date(2023, 1, 1),
            date(2023, 1, 2),
            [(date(2023, 1, 1), date(2023, 1, 1)), (date(2023, 1, 2), date(2023, 1, 2))],
        ),
        (date(2023, 1, 1), date(2023, 1, 1), [(date(2023, 1, 1), date(2023, 1, 1))]),
    ],
)
def test_split_period_into_halves(start: date, end: date, expected: list[tuple[date, date]]) -> None:
    assert [(p.start, p.end) for p in split_period_into_halves(start, end)] == expected


def test_split_period_into_halves_rejects_reversed_range() -> None:
    with pytest.raises(ValueError):
        split_period_into_halves(date(2023, 1, 2), date(2023, 1, 1))


def test_split_period_into_parts() -> None:
    parts = split_period_into_parts(date(2023, 1, 1), date(2023, 1, 8), 4)

    assert [(p.start.day, p.end.day) for p in parts] == [(1, 2), (3, 4), (5, 6), (7, 8)]
    assert split_period_into_parts(date(2023, 1, 1), date(2023, 1, 8), 1) == [
        Period(date(2023, 1, 1), date(2023, 1, 8))
    ]


def test_split_period_into_parts_stops_at_single_days() -> None:
    parts = split_period_into_parts(date(2023, 1, 1), date(2023, 1, 2), 4)

    assert [(p.start.day, p.end.day) for p in parts] == [(1, 1), (2, 2)]


def test_split_period_into_parts_requires_power_of_two() -> None:
    with pytest.raises(ValueError):
        split_period_into_parts(date(2023, 1, 1), date(2023, 1, 8), 3)
