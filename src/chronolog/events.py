"""Append-biased in-memory event log.

The event log is the source of truth. State is derived by replaying events.
Events are never mutated or reordered; only bulk removal changes contents.
"""

from __future__ import annotations

import bisect
import logging
from typing import TYPE_CHECKING, Generic, Iterable, Iterator, TypeVar

if TYPE_CHECKING:
    from .models import Event

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")


class EventLog(Generic[E]):
    """Ordered sequence of immutable events.

    Tracks whether timestamps are still non-decreasing so that time
    lookups can use a binary search; once an out-of-order timestamp has
    been appended the log falls back to scanning.
    """

    def __init__(self, events: Iterable[E] = ()):
        self._events: list[E] = []
        self._timestamps: list[int] = []
        self._monotonic = True
        for event in events:
            self.append(event)

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[E]:
        return iter(self._events)

    def __getitem__(self, position: int) -> E:
        return self._events[position]

    @property
    def last_position(self) -> int:
        """Position of the newest event, -1 when empty."""
        return len(self._events) - 1

    @property
    def last_timestamp(self) -> int | None:
        return self._timestamps[-1] if self._timestamps else None

    @property
    def is_monotonic(self) -> bool:
        return self._monotonic

    def append(self, event: E) -> int:
        """Append event, returning its position."""
        if self._timestamps and event.timestamp < self._timestamps[-1]:
            if self._monotonic:
                logger.warning(
                    f"Event {event.id} timestamp {event.timestamp} precedes "
                    f"previous {self._timestamps[-1]}; time lookups fall back to log order scan"
                )
            self._monotonic = False
        self._events.append(event)
        self._timestamps.append(event.timestamp)
        return len(self._events) - 1

    def truncate_after(self, position: int) -> int:
        """Drop every event after position. Returns number dropped."""
        keep = max(position + 1, 0)
        dropped = len(self._events) - keep
        if dropped <= 0:
            return 0
        del self._events[keep:]
        del self._timestamps[keep:]
        if not self._monotonic:
            self._recheck_monotonic()
        return dropped

    def drop_before(self, position: int) -> int:
        """Drop every event before position, shifting the rest down."""
        if position <= 0:
            return 0
        dropped = min(position, len(self._events))
        del self._events[:dropped]
        del self._timestamps[:dropped]
        if not self._monotonic:
            self._recheck_monotonic()
        return dropped

    def clear(self) -> None:
        self._events.clear()
        self._timestamps.clear()
        self._monotonic = True

    def slice(self, start: int, stop: int) -> list[E]:
        """Events at positions start..stop-1."""
        return self._events[max(start, 0):max(stop, 0)]

    def to_list(self) -> list[E]:
        return list(self._events)

    def events_between(self, start_ms: int, end_ms: int) -> list[E]:
        """Events with start_ms <= timestamp <= end_ms, in log order."""
        return [e for e in self._events if start_ms <= e.timestamp <= end_ms]

    def last_position_at_or_before(self, timestamp_ms: int) -> int:
        """Greatest position whose timestamp is <= timestamp_ms, or -1.

        Log order is authoritative: with out-of-order timestamps this is
        still the last matching event in the log, not the latest in time.
        """
        if self._monotonic:
            return bisect.bisect_right(self._timestamps, timestamp_ms) - 1
        for position in range(len(self._timestamps) - 1, -1, -1):
            if self._timestamps[position] <= timestamp_ms:
                return position
        return -1

    def _recheck_monotonic(self) -> None:
        ts = self._timestamps
        self._monotonic = all(ts[i] <= ts[i + 1] for i in range(len(ts) - 1))
