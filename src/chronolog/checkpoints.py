"""Sparse index of materialized states keyed by log position."""

from __future__ import annotations

import bisect
from dataclasses import dataclass
from typing import Generic, Iterator, TypeVar

S = TypeVar("S")


@dataclass(frozen=True)
class Checkpoint(Generic[S]):
    """State after folding every event up to and including ``position``.

    Position -1 holds the initial state (nothing folded yet).
    """

    position: int
    state: S


class CheckpointIndex(Generic[S]):
    """Checkpoints kept in position order for O(log n) nearest lookups.

    A checkpoint is a pure cache of a prefix fold; it must never disagree
    with replaying the log from its seed.
    """

    def __init__(self) -> None:
        self._positions: list[int] = []
        self._states: dict[int, S] = {}

    def __len__(self) -> int:
        return len(self._positions)

    def __contains__(self, position: object) -> bool:
        return position in self._states

    def __iter__(self) -> Iterator[Checkpoint[S]]:
        for position in self._positions:
            yield Checkpoint(position, self._states[position])

    def set(self, position: int, state: S) -> None:
        """Record a checkpoint, replacing any existing one at position."""
        if position not in self._states:
            bisect.insort(self._positions, position)
        self._states[position] = state

    def get(self, position: int) -> Checkpoint[S] | None:
        if position not in self._states:
            return None
        return Checkpoint(position, self._states[position])

    def nearest(self, position: int) -> Checkpoint[S] | None:
        """Checkpoint with the greatest position <= position."""
        i = bisect.bisect_right(self._positions, position)
        if i == 0:
            return None
        found = self._positions[i - 1]
        return Checkpoint(found, self._states[found])

    def discard_after(self, position: int) -> int:
        """Drop checkpoints beyond position. Returns number dropped."""
        i = bisect.bisect_right(self._positions, position)
        stale = self._positions[i:]
        for p in stale:
            del self._states[p]
        del self._positions[i:]
        return len(stale)

    def clear(self) -> None:
        self._positions.clear()
        self._states.clear()

    def positions(self) -> list[int]:
        return list(self._positions)

    def copy(self) -> "CheckpointIndex[S]":
        other: CheckpointIndex[S] = CheckpointIndex()
        other._positions = list(self._positions)
        other._states = dict(self._states)
        return other
