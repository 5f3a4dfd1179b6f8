#!/usr/bin/env python3
"""
Utility functions shared by the cache client modules.

Includes id grouping for bulk requests, timestamp formatting for diagnostics,
and helpers that reverse Pinterest's "N units ago" labels into dates.

Pinterest floors its relative times: "2 minutes ago" persists until the pin
has been up for 3 minutes, "5 hours ago" until 6 hours, and so on. The
earliest moment a label can refer to is therefore one second short of the
next whole unit.
"""

from datetime import datetime, timezone, timedelta
from typing import Iterator, List, Optional, Sequence, TypeVar

T = TypeVar("T")

MINUTE_IN_SECONDS = 60
HOUR_IN_SECONDS = 60 * MINUTE_IN_SECONDS
DAY_IN_SECONDS = 24 * HOUR_IN_SECONDS
WEEK_IN_SECONDS = 7 * DAY_IN_SECONDS
YEAR_IN_SECONDS = 365 * DAY_IN_SECONDS

# Pinterest never reports months
UNIT_SECONDS = {
    "minute": MINUTE_IN_SECONDS,
    "hour": HOUR_IN_SECONDS,
    "day": DAY_IN_SECONDS,
    "week": WEEK_IN_SECONDS,
    "year": YEAR_IN_SECONDS,
}

JUST_NOW_SECONDS = 59


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """Yield consecutive groups of at most ``size`` items, preserving order."""
    if size < 1:
        raise ValueError(f"Group size must be positive, got {size}")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


def earliest_time_ago_ms(value: int, unit: str) -> int:
    """Return the longest age, in milliseconds, that a floored label can mean.

    Args:
        value: The number in the label (e.g. 2 for "2 minutes ago")
        unit: Singular unit name: minute, hour, day, week or year

    Returns:
        Milliseconds one second short of ``value + 1`` units.
    """
    unit_seconds = UNIT_SECONDS.get(unit)
    if unit_seconds is None:
        raise ValueError(f"Unsupported time-ago unit: {unit!r}")
    seconds = value * unit_seconds
    return (seconds + unit_seconds - 1) * 1000


def earliest_date_from_time_ago_text(text: str, start: Optional[datetime] = None) -> datetime:
    """Convert a label such as "3 weeks ago" into the earliest matching datetime.

    "Just now" maps to 59 seconds before ``start``. Plural units are accepted.
    ``start`` defaults to the current UTC time.
    """
    start = start or datetime.now(timezone.utc)
    words = text.strip().split()
    if not words:
        raise ValueError("Empty time-ago text")
    if words[0].lower() == "just":
        return start - timedelta(seconds=JUST_NOW_SECONDS)
    if len(words) < 2:
        raise ValueError(f"Unrecognized time-ago text: {text!r}")

    try:
        value = int(words[0])
    except ValueError as e:
        raise ValueError(f"Unrecognized time-ago value in {text!r}") from e

    unit = words[1].lower()
    if unit.endswith("s"):
        unit = unit[:-1]

    return start - timedelta(milliseconds=earliest_time_ago_ms(value, unit))


def format_timestamp(timestamp: Optional[float]) -> str:
    """Return a human-readable UTC timestamp for diagnostics."""
    if timestamp in (None, ""):
        return "n/a"
    try:
        return datetime.fromtimestamp(float(timestamp), tz=timezone.utc).isoformat()
    except (OSError, OverflowError, ValueError, TypeError):
        return str(timestamp)
