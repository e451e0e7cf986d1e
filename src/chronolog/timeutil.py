"""Time parsing utilities for human-friendly time references.

Event timestamps are integer milliseconds since the epoch (UTC). These
helpers convert to and from them.

Supports:
- ISO format: "2025-01-15", "2025-01-15T14:30:00"
- Relative: "7 days ago", "2 weeks ago", "1 month ago"
- Named: "yesterday", "last week", "last month"
"""

import re
from datetime import datetime, timezone
from typing import Callable

from dateutil import parser as dateparser
from dateutil.relativedelta import relativedelta

from .constants import (
    MS_PER_SECOND,
    SECONDS_PER_DAY,
    SECONDS_PER_HOUR,
    SECONDS_PER_MINUTE,
    SECONDS_PER_MONTH,
    SECONDS_PER_WEEK,
    SECONDS_PER_YEAR,
)


def to_ms(dt: datetime) -> int:
    """Convert a datetime to epoch milliseconds (naive treated as UTC)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * MS_PER_SECOND)


def from_ms(ms: int) -> datetime:
    """Convert epoch milliseconds to a timezone-aware UTC datetime."""
    return datetime.fromtimestamp(ms / MS_PER_SECOND, tz=timezone.utc)


def _midnight(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


_NAMED_REFERENCES: dict[str, Callable[[datetime], datetime]] = {
    "now": lambda now: now,
    "today": _midnight,
    "yesterday": lambda now: _midnight(now - relativedelta(days=1)),
    "last week": lambda now: now - relativedelta(weeks=1),
    "last month": lambda now: now - relativedelta(months=1),
    "last year": lambda now: now - relativedelta(years=1),
}

_AGO_PATTERN = re.compile(r"(\d+)\s*(second|minute|hour|day|week|month|year)s?\s*ago")

# Largest first; months and years are fixed-length approximations
_RELATIVE_UNITS_MS = [
    ("year", SECONDS_PER_YEAR * MS_PER_SECOND),
    ("month", SECONDS_PER_MONTH * MS_PER_SECOND),
    ("week", SECONDS_PER_WEEK * MS_PER_SECOND),
    ("day", SECONDS_PER_DAY * MS_PER_SECOND),
    ("hour", SECONDS_PER_HOUR * MS_PER_SECOND),
    ("minute", SECONDS_PER_MINUTE * MS_PER_SECOND),
]


def parse_time_reference(ref: str, now: datetime | None = None) -> datetime:
    """Parse a human-friendly time reference into a UTC datetime.

    Relative references are calendar-aware: "1 month ago" on March 31st
    lands on the last day of February.

    Raises:
        ValueError: If the reference cannot be parsed

    Examples:
        >>> parse_time_reference("2025-01-15")
        datetime(2025, 1, 15, 0, 0, tzinfo=timezone.utc)
    """
    if now is None:
        now = datetime.now(timezone.utc)
    ref = ref.strip().lower()

    named = _NAMED_REFERENCES.get(ref)
    if named is not None:
        return named(now)

    ago = _AGO_PATTERN.fullmatch(ref)
    if ago:
        amount, unit = int(ago.group(1)), ago.group(2)
        return now - relativedelta(**{f"{unit}s": amount})

    try:
        parsed = dateparser.parse(ref)
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Cannot parse time reference: {ref}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def resolve_ms(ref: "str | datetime | int", now: datetime | None = None) -> int:
    """Turn a time reference, datetime or millisecond count into epoch ms."""
    if isinstance(ref, bool):
        raise TypeError("Time reference cannot be a bool")
    if isinstance(ref, int):
        return ref
    if isinstance(ref, datetime):
        return to_ms(ref)
    return to_ms(parse_time_reference(ref, now=now))


def format_relative_time(when: "datetime | int", now: "datetime | int | None" = None) -> str:
    """Format a datetime or epoch ms as e.g. "2 days ago" relative to now."""
    when_ms = when if isinstance(when, int) else to_ms(when)
    if now is None:
        now_ms = to_ms(datetime.now(timezone.utc))
    else:
        now_ms = now if isinstance(now, int) else to_ms(now)

    elapsed = now_ms - when_ms
    if elapsed < 0:
        return "in the future"

    for unit, unit_ms in _RELATIVE_UNITS_MS:
        if elapsed >= unit_ms:
            count = elapsed // unit_ms
            return f"{count} {unit}{'s' if count != 1 else ''} ago"
    return f"{elapsed // MS_PER_SECOND} seconds ago"
