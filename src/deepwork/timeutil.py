# src/deepwork/timeutil.py

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """
    Serialize as UTC ISO-8601 with millisecond precision and a 'Z' suffix.

    A single fixed format keeps lexicographic order equal to time order, which the
    sessions.end_at index relies on for range queries.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(raw: str) -> datetime:
    s = raw.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def local_day_start(now: datetime) -> datetime:
    """Midnight of the local calendar day containing `now` (returned as aware datetime)."""
    local = now.astimezone()
    return local.replace(hour=0, minute=0, second=0, microsecond=0)
