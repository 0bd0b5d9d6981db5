# src/deepwork/tasks/recommend.py

from __future__ import annotations

"""
Recommendation engine: pick what to work on next for a given time window.

Pure and deterministic: no I/O, no clock, same input -> same output.

Ranking (ascending = better):
1. remaining minutes (known before unknown)
2. last_session_end_at (never worked on counts as most stale)
3. warm before cold
4. created_at (oldest first)
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from ..errors import InvalidArgument
from ..timeutil import EPOCH, parse_iso
from .task_models import MAX_MINUTES, MIN_MINUTES, Task, TaskCategory, TaskState
from .task_repo import remaining_minutes

MAX_RESULTS = 3

MSG_MAY_NOT_FINISH = "May not finish within the window, but still makes progress."
MSG_ADD_ESTIMATES = "No task has an estimate yet; add estimates to get better recommendations."
MSG_NOTHING = "Nothing to recommend."


@dataclass(frozen=True, slots=True)
class Candidate:
    task: Task
    remaining_minutes: int | None


@dataclass(frozen=True, slots=True)
class Recommendation:
    top: Candidate | None
    alternatives: tuple[Candidate, ...] = ()
    message: str | None = None


def _ts(raw: str | None) -> datetime:
    if not raw:
        return EPOCH
    try:
        return parse_iso(raw)
    except ValueError:
        return EPOCH


def _sort_key(c: Candidate) -> tuple:
    t = c.task
    return (
        c.remaining_minutes is None,
        c.remaining_minutes or 0,
        _ts(t.last_session_end_at),
        0 if t.state == TaskState.WARM else 1,
        _ts(t.created_at),
        t.id,
    )


def _pack(ranked: list[Candidate], message: str | None = None) -> Recommendation:
    return Recommendation(top=ranked[0], alternatives=tuple(ranked[1:MAX_RESULTS]), message=message)


def recommend(
    tasks: Iterable[Task],
    time_window_minutes: int,
    *,
    category: TaskCategory | str = TaskCategory.WORK,
) -> Recommendation:
    if isinstance(time_window_minutes, bool) or not isinstance(time_window_minutes, int):
        raise InvalidArgument(f"time window must be an integer, got {time_window_minutes!r}")
    if not MIN_MINUTES <= time_window_minutes <= MAX_MINUTES:
        raise InvalidArgument(f"time window must be between {MIN_MINUTES} and {MAX_MINUTES}")
    try:
        category = TaskCategory(category)
    except ValueError:
        raise InvalidArgument(f"unknown category: {category!r}") from None

    candidates = [
        Candidate(task=t, remaining_minutes=remaining_minutes(t))
        for t in tasks
        if t.state != TaskState.DONE and t.category == category
    ]

    estimated = sorted((c for c in candidates if c.remaining_minutes is not None), key=_sort_key)
    matches = [c for c in estimated if c.remaining_minutes <= time_window_minutes]

    if len(matches) >= MAX_RESULTS:
        return _pack(matches)

    # Fill up with tasks that will not fit the window but still have an estimate.
    fallback = matches + [c for c in estimated if c.remaining_minutes > time_window_minutes]
    if fallback:
        return _pack(fallback, None if matches else MSG_MAY_NOT_FINISH)

    unestimated = sorted(
        (c for c in candidates if c.remaining_minutes is None),
        key=lambda c: (_ts(c.task.created_at), c.task.id),
    )
    if unestimated:
        return _pack(unestimated, MSG_ADD_ESTIMATES)

    return Recommendation(top=None, alternatives=(), message=MSG_NOTHING)
