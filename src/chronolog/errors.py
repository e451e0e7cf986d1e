"""Exception types raised by chronolog."""

from __future__ import annotations


class ChronologError(Exception):
    """Base class for chronolog errors."""


class SnapshotError(ChronologError):
    """A snapshot is malformed or does not reproduce its recorded state."""


class EvictedPositionError(ChronologError):
    """A projection was requested for a position dropped by compaction."""

    def __init__(self, position: int, floor: int):
        super().__init__(
            f"Position {position} was evicted; earliest reachable position is {floor}"
        )
        self.position = position
        self.floor = floor


class ListenerError(ChronologError):
    """One or more subscribers raised while being notified.

    The store has already committed its new state when this is raised.
    """

    def __init__(self, errors: list[Exception]):
        super().__init__(
            f"{len(errors)} listener(s) failed: "
            + "; ".join(f"{type(e).__name__}: {e}" for e in errors)
        )
        self.errors = errors
