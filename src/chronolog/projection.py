"""State projection from events.

Folds the reducer over the event log to build state, seeded from the
nearest checkpoint at or before the target position.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, TypeVar

from .checkpoints import Checkpoint, CheckpointIndex
from .errors import EvictedPositionError
from .events import EventLog

logger = logging.getLogger(__name__)

S = TypeVar("S")
E = TypeVar("E")

Reducer = Callable[[S, E], S]


def fold(reducer: Reducer, state: S, events: Iterable[E]) -> S:
    """Apply events to state in order."""
    for event in events:
        state = reducer(state, event)
    return state


def project_at(
    log: EventLog,
    checkpoints: CheckpointIndex,
    reducer: Reducer,
    position: int,
) -> S:
    """Project state at a log position.

    Args:
        log: The event log
        checkpoints: Index holding at least the seed checkpoint
        reducer: Transition function
        position: Target position, already clamped to the log

    Returns:
        State after folding every event through ``position``

    Raises:
        EvictedPositionError: If position precedes the seed checkpoint
    """
    checkpoint = checkpoints.nearest(position)
    if checkpoint is None:
        seed = checkpoints.nearest(len(log))
        floor = seed.position if seed is not None else -1
        raise EvictedPositionError(position, floor)
    return fold(
        reducer,
        checkpoint.state,
        log.slice(checkpoint.position + 1, position + 1),
    )


def checkpoint_positions(length: int, interval: int, start: int = 0) -> range:
    """Positions below ``length`` that the interval policy checkpoints.

    A position qualifies when it is a non-negative multiple of interval.
    """
    first = max(start, 0)
    first += (-first) % interval
    return range(first, length, interval)


def is_checkpoint_position(position: int, interval: int) -> bool:
    return position >= 0 and position % interval == 0


def rebuild_checkpoints(
    log: EventLog,
    reducer: Reducer,
    seed: Checkpoint,
    interval: int | None,
) -> CheckpointIndex:
    """Build a fresh checkpoint index from a seed and the interval policy.

    Folds incrementally from the seed so the rebuild costs one pass over
    the log. ``interval=None`` keeps only the seed.
    """
    index: CheckpointIndex = CheckpointIndex()
    index.set(seed.position, seed.state)
    if interval is None:
        return index

    state = seed.state
    cursor = seed.position
    for position in checkpoint_positions(len(log), interval, seed.position + 1):
        state = fold(reducer, state, log.slice(cursor + 1, position + 1))
        cursor = position
        index.set(position, state)

    logger.debug(f"Rebuilt {len(index)} checkpoints over {len(log)} events")
    return index
