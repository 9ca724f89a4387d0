"""Local-time helpers.

All day-scoped logic works on *naive local* datetimes: a calendar day runs
from local midnight (inclusive) to the next local midnight (exclusive).
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime, time, timedelta

__all__ = ["Clock", "day_window", "in_day", "local_now", "next_midnight", "to_local"]

Clock = Callable[[], datetime]


def local_now() -> datetime:
    return datetime.now()


def to_local(ts: datetime | str | float | int | None, clock: Clock = local_now) -> datetime:
    """Coerce an ingest timestamp into a naive local ``datetime``.

    Accepts a ``datetime`` (aware values are converted to local time),
    an ISO-8601 string (a trailing ``Z`` is understood), Unix epoch
    seconds, or ``None`` which means "now" according to *clock*.
    """
    if ts is None:
        return clock()
    if isinstance(ts, datetime):
        dt = ts
    elif isinstance(ts, (int, float)):
        return datetime.fromtimestamp(ts)
    elif isinstance(ts, str):
        raw = ts.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        dt = datetime.fromisoformat(raw)
    else:
        raise TypeError(f"Unsupported timestamp type: {type(ts).__name__}")

    if dt.tzinfo is not None:
        dt = dt.astimezone().replace(tzinfo=None)
    return dt


def day_window(day: date) -> tuple[datetime, datetime]:
    """Return ``(start, end)`` for *day*: midnight-inclusive, next-midnight-exclusive."""
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def in_day(ts: datetime, day: date) -> bool:
    start, end = day_window(day)
    return start <= ts < end


def next_midnight(now: datetime) -> datetime:
    return datetime.combine(now.date() + timedelta(days=1), time.min)
