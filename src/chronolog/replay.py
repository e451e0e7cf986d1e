"""Replay capture: a redacted, self-contained record of a session.

Builds the record a bug report or upload collaborator would ship, and
plays a captured record back through a store. Sending it anywhere is left
to the caller.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any, Callable, Iterable, Iterator

from pydantic import BaseModel, Field

from .constants import PLAYBACK_MIN_DELAY_MS, REDACTED_PLACEHOLDER
from .errors import ChronologError
from .models import generate_id, now_ms

if TYPE_CHECKING:
    from .store import EventStore

logger = logging.getLogger(__name__)


class Replay(BaseModel):
    """Captured session: active events plus the states bracketing them."""

    id: str = Field(default_factory=generate_id)
    events: list[dict[str, Any]]
    initial_state: Any
    final_state: Any
    duration: int  # ms between first and last active event
    timestamp: int = Field(default_factory=now_ms)
    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


def redact(value: Any, fields: Iterable[str], path: str = "") -> Any:
    """Return a copy of value with matching keys replaced.

    A key matches when either its bare name or its dotted path from the
    root (e.g. ``payload.user.email``) is listed in fields.
    """
    fields = frozenset(fields)
    if not fields:
        return value
    return _redact(value, fields, path)


def _redact(value: Any, fields: frozenset[str], path: str) -> Any:
    if isinstance(value, dict):
        out = {}
        for key, item in value.items():
            full_path = f"{path}.{key}" if path else str(key)
            if key in fields or full_path in fields:
                out[key] = REDACTED_PLACEHOLDER
            else:
                out[key] = _redact(item, fields, full_path)
        return out
    if isinstance(value, list):
        return [_redact(item, fields, path) for item in value]
    return value


def generate_replay(
    store: "EventStore",
    error: BaseException | None = None,
    metadata: dict[str, Any] | None = None,
) -> Replay:
    """Capture the store's active history as a Replay.

    Events are dumped to JSON-compatible dicts and redacted with the
    store's ``redact_fields`` option.

    Args:
        store: Store to capture
        error: Exception that triggered the capture, if any
        metadata: Extra caller metadata merged over the store's own

    Returns:
        Replay record
    """
    fields = store.options.redact_fields
    # A compacted log cannot reproduce the state before its seed, so the
    # replay starts from the seed state and omits the seed event itself.
    events = store.get_active_events()[store.floor + 1:]
    dumped = [redact(e.model_dump(mode="json"), fields) for e in events]

    duration = events[-1].timestamp - events[0].timestamp if events else 0
    initial_state = store.project_at(store.floor)

    replay = Replay(
        events=dumped,
        initial_state=initial_state,
        final_state=store.project(),
        duration=duration,
        error=f"{type(error).__name__}: {error}" if error is not None else None,
        metadata={
            **store.metadata,
            **(metadata or {}),
            "event_count": len(events),
            "compacted": store.compacted,
        },
    )
    logger.info(f"Captured replay {replay.id} with {len(events)} events")
    return replay


def playback(
    store: "EventStore",
    replay: Replay,
    speed: float = 1.0,
) -> Iterator[tuple[int, Any, float]]:
    """Step the store's cursor through a replay's events.

    The store must hold the replayed events, e.g. the store the replay was
    captured from, or one restored from its snapshot. Events are matched by
    id, so redacted payloads do not matter.

    Each step navigates to the next event and yields
    ``(position, state, delay_ms)``, where delay_ms is how long to wait
    before the following step: the recorded gap divided by speed, never
    less than PLAYBACK_MIN_DELAY_MS. The last step yields a delay of 0.
    Stop early by closing or abandoning the iterator.

    Args:
        store: Store whose cursor is moved
        replay: Captured replay
        speed: Playback rate; 2.0 halves every delay

    Raises:
        ValueError: If speed is not positive
        ChronologError: If a replay event is not in the store
    """
    if speed <= 0:
        raise ValueError(f"Playback speed must be positive, got {speed}")

    positions = {event.id: i for i, event in enumerate(store.get_events())}
    steps = []
    for event in replay.events:
        position = positions.get(event["id"])
        if position is None:
            raise ChronologError(f"Replay event {event['id']} is not in the store")
        steps.append((position, event["timestamp"]))

    logger.debug(f"Playing back replay {replay.id}: {len(steps)} events at {speed}x")
    return _play(store, steps, speed)


def _play(store: "EventStore", steps: list[tuple[int, int]], speed: float):
    for i, (position, timestamp) in enumerate(steps):
        store.navigate(position)
        if i + 1 < len(steps):
            gap = steps[i + 1][1] - timestamp
            delay = max(gap / speed, PLAYBACK_MIN_DELAY_MS)
        else:
            delay = 0
        yield position, store.project(), delay


def run_playback(
    store: "EventStore",
    replay: Replay,
    speed: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Play a replay to the end in real time. Returns the final position."""
    position = store.index
    for position, _, delay in playback(store, replay, speed):
        if delay:
            sleep(delay / 1000)
    return position
