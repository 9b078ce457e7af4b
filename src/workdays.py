"""
workdays.py

Calendar and work-day arithmetic for the Plot Build-Stage Tracker.

"Days" always means calendar days; "work days" means Monday to Friday.
No public holidays are taken into account.

Every function is pure: inputs are never modified and no clock is read
except by utcnow().
"""

from __future__ import annotations

import math
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union

DateLike = Union[date, datetime]

_ONE_DAY = timedelta(days=1)
_SECONDS_PER_DAY = 24 * 60 * 60


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _day(value: DateLike) -> date:
    """Drop the time-of-day component, if any."""
    if isinstance(value, datetime):
        return value.date()
    return value


def is_work_day(value: DateLike) -> bool:
    """True for Monday to Friday."""
    return _day(value).weekday() < 5


def add_days(value: DateLike, days: int) -> DateLike:
    """Shift by calendar days, with no weekend awareness."""
    return value + timedelta(days=days)


def add_work_days(value: DateLike, work_days: int) -> DateLike:
    """
    Step forward one calendar day at a time until `work_days` weekdays have
    been stepped over, and return the date landed on.

    The starting day itself is never counted, so a Friday plus one work day
    is the following Monday.  `work_days <= 0` returns `value` unchanged.
    Time of day is preserved.
    """
    current = value
    added = 0
    while added < work_days:
        current = current + _ONE_DAY
        if is_work_day(current):
            added += 1
    return current


def get_days_between(start: DateLike, end: DateLike) -> int:
    """Absolute calendar-day distance, rounded up to a whole day."""
    seconds = abs((end - start).total_seconds())
    return math.ceil(seconds / _SECONDS_PER_DAY)


def get_work_days_between(start: DateLike, end: DateLike) -> int:
    """
    Count weekdays in the inclusive range [start, end] at day granularity.

    Returns 0 when `start` is strictly after `end`.  The comparison uses the
    full values, so a later time on the same day also yields 0.
    """
    if start > end:
        return 0

    current = _day(start)
    last = _day(end)
    count = 0
    while current <= last:
        if current.weekday() < 5:
            count += 1
        current += _ONE_DAY
    return count


# ---------------------------------------------------------------------------
# ISO-8601 boundary helpers
# ---------------------------------------------------------------------------

def parse_iso(text: str) -> datetime:
    """
    Parse an ISO-8601 date or date-time string into a tz-aware UTC datetime.

    A trailing "Z" is accepted.  Naive values are taken to be UTC; a bare
    date becomes midnight UTC.  Raises ValueError for anything unparseable.
    """
    if not isinstance(text, str) or not text.strip():
        raise ValueError(f"Invalid ISO-8601 date: {text!r}")
    cleaned = text.strip()
    if cleaned.endswith(("Z", "z")):
        cleaned = cleaned[:-1] + "+00:00"
    parsed = datetime.fromisoformat(cleaned)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Convert a datetime to an ISO-8601 UTC string, or None."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def to_day_stamp(value: datetime) -> str:
    """The YYYY-MM-DD prefix used to stamp note entries."""
    return _day(value).isoformat()


def format_date(value: DateLike) -> str:
    """Display form used in reports, e.g. '19 Oct 2026'."""
    return _day(value).strftime("%d %b %Y")
