"""Time-based read operations over an event store.

Provides methods to:
- Find the log position active at a point in time
- Get state at any point in time without moving the cursor
- Get events within a time range
- Move the cursor using human-friendly time references
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from .timeutil import resolve_ms

if TYPE_CHECKING:
    from .store import EventStore

logger = logging.getLogger(__name__)

class TimeTraveler:
    """Handles time-based queries on an event store.

    Timestamps may be ISO strings, relative references ("2 hours ago"),
    datetimes (naive treated as UTC) or epoch milliseconds. All operations
    are read-only except navigate_to.
    """

    def __init__(self, store: "EventStore"):
        self._store = store

    def position_at(self, timestamp: str | datetime | int) -> int:
        """Last log position whose event timestamp is <= timestamp, or -1."""
        ts = resolve_ms(timestamp)
        return max(
            self._store.floor,
            self._store.position_at_time(ts),
        )

    def state_at(self, timestamp: str | datetime | int) -> Any:
        """State as it was at a point in time.

        Undone events still in the log are included when they fall before
        the timestamp, matching navigate_to_time.
        """
        return self._store.project_at(self.position_at(timestamp))

    def events_between(
        self,
        start: str | datetime | int,
        end: str | datetime | int | None = None,
    ) -> list:
        """Events in a time range (end defaults to now)."""
        start_ms = resolve_ms(start)
        end_ms = resolve_ms(end if end is not None else "now")
        return self._store.events_between(start_ms, end_ms)

    def navigate_to(self, timestamp: str | datetime | int) -> bool:
        """Move the store's cursor to a point in time."""
        ts = resolve_ms(timestamp)
        logger.debug(f"Navigating to {timestamp!r} ({ts} ms)")
        return self._store.navigate_to_time(ts)

