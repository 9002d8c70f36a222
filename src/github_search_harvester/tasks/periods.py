"""Inclusive calendar-day period arithmetic.

GitHub's search qualifiers (`created:2023-01-01..2023-01-05`) are inclusive on
both ends. To search a long range without duplicates, the range is cut into
periods that neither overlap nor leave gaps, e.g.:

- 2023-01-01..2023-01-05
- 2023-01-06..2023-01-10

The same convention is used when seeding a campaign and when narrowing a
failing task, so seeding is just the partition applied once, up front.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta

DATE_FORMAT = "%Y-%m-%d"


@dataclass(frozen=True, slots=True)
class Period:
    start: date
    end: date

    @property
    def days(self) -> int:
        """Number of days in the period, both ends included."""

        return (self.end - self.start).days + 1


def parse_date(value: str) -> date:
    return datetime.strptime(value, DATE_FORMAT).date()


def format_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)


def add_days(value: date, days: int) -> date:
    return value + timedelta(days=days)


def subtract_days(value: date, days: int) -> date:
    return value - timedelta(days=days)


def days_in_period(start: date, end: date, period_in_days: int) -> list[date]:
    """Return the first day of every `period_in_days`-long interval in `[start, end]`."""

    if period_in_days < 1:
        raise ValueError("period_in_days must be a positive integer")

    starts: list[date] = []
    current = start
    while current <= end:
        starts.append(current)
        current = add_days(current, period_in_days)
    return starts


def partition_period(start: date, end: date, period_in_days: int) -> list[Period]:
    """Cut `[start, end]` into consecutive inclusive periods of `period_in_days` days.

    The last period is clipped to `end`.
    """

    periods: list[Period] = []
    for interval_start in days_in_period(start, end, period_in_days):
        interval_end = add_days(interval_start, period_in_days - 1)
        if interval_end > end:
            interval_end = end
        periods.append(Period(start=interval_start, end=interval_end))
    return periods


def split_period_into_halves(start: date, end: date) -> list[Period]:
    """Split `[start, end]` into two halves.

    Returns a single period when the range is one day long (it can't be split).
    For an odd number of days the first half gets the extra day.
    """

    if start > end:
        raise ValueError(f"Invalid period: {format_date(start)} is after {format_date(end)}")

    whole = Period(start=start, end=end)
    if start == end:
        return [whole]

    middle = add_days(start, (whole.days - 1) // 2)
    return [Period(start=start, end=middle), Period(start=add_days(middle, 1), end=end)]


def split_period_into_parts(start: date, end: date, parts: int) -> list[Period]:
    """Split `[start, end]` into `parts` periods by repeated halving.

    `parts` must be a power of two. Periods that are already a single day are
    not split further, so fewer than `parts` periods may come back.
    """

    if parts < 1 or parts & (parts - 1) != 0:
        raise ValueError(f"parts must be a power of 2, got {parts}")

    periods = [Period(start=start, end=end)]
    while parts > 1:
        halved: list[Period] = []
        for period in periods:
            halved.extend(split_period_into_halves(period.start, period.end))
        periods = halved
        parts //= 2
    return periods
