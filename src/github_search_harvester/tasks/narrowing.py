"""Derivation of continuation and narrowed-down specs.

All functions here are pure: they read a spec and return brand-new specs.

Lineage rules:

- A continuation (next page) gets `parent_id=None`. Its `originating_task_id`
  is the id of the spec it continues when that spec has no start cursor (it
  is the first page of its chain), otherwise it is inherited. Page chains are
  therefore flat: one hop from any continuation reaches the first page.
- A narrowed-down child gets `parent_id` set to the failing spec and inherits
  its `originating_task_id`.

A cursor is only meaningful inside the range it was issued for, so a spec with
a start cursor is never split as if it had no cursor. Instead, the split is
applied to the originating spec's range. Continuations copy their range
verbatim, so that range is the failing spec's own range; the children start
from the first page again. Part of the range is searched twice, which is
accepted: the output is deduplicated downstream by natural key.
"""

from __future__ import annotations

from typing import Any, TypeVar

from github_search_harvester.tasks.periods import (
    format_date,
    parse_date,
    split_period_into_halves,
)
from github_search_harvester.tasks.spec import TaskSpec, new_task_id

SpecT = TypeVar("SpecT", bound=TaskSpec)


def continuation_spec(spec: SpecT, *, end_cursor: str | None) -> SpecT:
    """Return the spec fetching the page after `spec`'s page."""

    if getattr(spec, "start_cursor", None) is None:
        originating_task_id = spec.id
    else:
        originating_task_id = spec.originating_task_id

    return spec.model_copy(
        update={
            "id": new_task_id(),
            "parent_id": None,
            "originating_task_id": originating_task_id,
            "start_cursor": end_cursor,
        }
    )


def _child(spec: SpecT, **updates: Any) -> SpecT:
    return spec.model_copy(
        update={
            "id": new_task_id(),
            "parent_id": spec.id,
            "originating_task_id": spec.originating_task_id,
            **updates,
        }
    )


def _halves(spec: TaskSpec, axis: tuple[str, str]) -> list[tuple[str, str]]:
    after_field, before_field = axis
    periods = split_period_into_halves(
        parse_date(getattr(spec, after_field)),
        parse_date(getattr(spec, before_field)),
    )
    return [(format_date(p.start), format_date(p.end)) for p in periods]


def split_single_axis(spec: SpecT, *, axis: tuple[str, str]) -> list[SpecT] | None:
    """Split the date range named by `axis` (after-field, before-field) in halves.

    Returns None when the range is a single day.
    """

    halves = _halves(spec, axis)
    if len(halves) <= 1:
        return None

    after_field, before_field = axis
    return [
        _child(spec, **{after_field: after, before_field: before, "start_cursor": None})
        for after, before in halves
    ]


def split_dual_axis(
    spec: SpecT, *, first_axis: tuple[str, str], second_axis: tuple[str, str]
) -> list[SpecT] | None:
    """Split two independent date ranges.

    - both splittable: the 2x2 cross product, first axis major
    - one splittable: 2 children along that axis
    - none splittable: page size halving (1 child), or None when the page size is 1
    """

    first_halves = _halves(spec, first_axis)
    second_halves = _halves(spec, second_axis)

    if len(first_halves) * len(second_halves) <= 1:
        return halve_page_size(spec, start_cursor=None)

    first_after, first_before = first_axis
    second_after, second_before = second_axis
    children: list[SpecT] = []
    for after_1, before_1 in first_halves:
        for after_2, before_2 in second_halves:
            children.append(
                _child(
                    spec,
                    **{
                        first_after: after_1,
                        first_before: before_1,
                        second_after: after_2,
                        second_before: before_2,
                        "start_cursor": None,
                    },
                )
            )
    return children


_KEEP = object()


def halve_page_size(spec: SpecT, *, start_cursor: Any = _KEEP) -> list[SpecT] | None:
    """Return one child with half the page size, or None when the page size is below 2.

    The child keeps the spec's start cursor unless `start_cursor` is given.
    Only one child is produced: a smaller page changes how the remaining
    results are fetched, it doesn't partition them.
    """

    page_size: int = getattr(spec, "page_size")
    if page_size < 2:
        return None

    updates: dict[str, Any] = {"page_size": page_size // 2}
    if start_cursor is not _KEEP:
        updates["start_cursor"] = start_cursor
    return [_child(spec, **updates)]
