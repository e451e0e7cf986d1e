"""Event store - orchestrates the event log, cursor, checkpoints and projection."""

from __future__ import annotations

import copy
import logging
from typing import Any, Callable, Generic, Mapping, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from .checkpoints import Checkpoint, CheckpointIndex
from .constants import INITIAL_POSITION
from .errors import EvictedPositionError, ListenerError, SnapshotError
from .events import EventLog
from .models import (
    CursorMove,
    CursorMoveKind,
    Event,
    Snapshot,
    StoreOptions,
    StoreStats,
    now_ms,
)
from .projection import (
    Reducer,
    is_checkpoint_position,
    project_at,
    rebuild_checkpoints,
)

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Event)
S = TypeVar("S")

AppendListener = Callable[[Any, Any], None]
CursorListener = Callable[[CursorMove, Any], None]


class EventStore(Generic[E, S]):
    """In-process event-sourced state container with time travel.

    State is never stored directly: it is the reducer folded over the
    active prefix of the log (positions ``0..index``). The reducer must be
    pure and deterministic, and states it returns are treated as immutable
    values; checkpoints hold references to them.

    Not thread-safe. Callers sharing a store across threads must serialize
    access themselves.
    """

    def __init__(
        self,
        initial_state: S,
        reducer: Reducer,
        options: StoreOptions | None = None,
        *,
        event_model: Any = Event,
        state_model: Any = Any,
        clock: Callable[[], int] = now_ms,
        **overrides: Any,
    ):
        """Create a store.

        Args:
            initial_state: State before any event
            reducer: Pure ``(state, event) -> state`` transition function
            options: Store configuration (defaults from constants)
            event_model: Event model or discriminated union used to build
                and validate events
            state_model: Type used to validate ``state`` in restored snapshots
            clock: Millisecond clock used for event and snapshot timestamps
            **overrides: Individual StoreOptions fields, applied over options
        """
        if options is None:
            options = StoreOptions(**overrides)
        elif overrides:
            options = StoreOptions.model_validate({**options.model_dump(), **overrides})

        self._initial_state = initial_state
        self._reducer = reducer
        self._options = options
        self._event_model = event_model
        self._state_model = state_model
        self._event_adapter: TypeAdapter = TypeAdapter(event_model)
        self._events_adapter: TypeAdapter = TypeAdapter(list[event_model])
        # Events stay untyped in the snapshot model and go through
        # _events_adapter, so variant subclasses serialize with their own fields
        self._snapshot_model = Snapshot[Any, state_model]
        self._clock = clock

        self._log: EventLog = EventLog()
        self._index = INITIAL_POSITION
        self._seed: Checkpoint = Checkpoint(INITIAL_POSITION, initial_state)
        self._checkpoints: CheckpointIndex = CheckpointIndex()
        self._checkpoints.set(self._seed.position, self._seed.state)

        self._listeners: dict[object, AppendListener] = {}
        self._cursor_listeners: dict[object, CursorListener] = {}
        self._metadata: dict[str, Any] = {}

    # ─────────────────────────────────────────────────────────────────────────
    # Properties
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def index(self) -> int:
        """Cursor: position of the last active event, -1 before any."""
        return self._index

    @property
    def initial_state(self) -> S:
        return self._initial_state

    @property
    def options(self) -> StoreOptions:
        return self._options

    @property
    def floor(self) -> int:
        """Lowest reachable cursor position (0 once the log was compacted)."""
        return self._seed.position

    @property
    def compacted(self) -> bool:
        return self._seed.position >= 0

    @property
    def _interval(self) -> int | None:
        if not self._options.enable_checkpoints:
            return None
        return self._options.checkpoint_interval

    def __len__(self) -> int:
        return len(self._log)

    # ─────────────────────────────────────────────────────────────────────────
    # Append
    # ─────────────────────────────────────────────────────────────────────────

    def append(self, event_type: str, payload: Mapping[str, Any] | None = None) -> E:
        """Record a new event at the cursor, discarding any undone future.

        The reducer runs before anything is committed, so a failing reducer
        or an invalid payload leaves the store exactly as it was.

        Args:
            event_type: Event tag
            payload: Tag-specific data

        Returns:
            The appended event, carrying its generated id and timestamp

        Raises:
            pydantic.ValidationError: If the event does not match event_model
            ListenerError: If a subscriber failed (the append is committed)
        """
        event = self._build_event(event_type, payload)
        new_state = self._reducer(self.project(), event)

        # Compaction is planned on the truncated length before any mutation
        length = self._index + 1
        cut, cut_state = None, None
        if length >= self._options.max_events:
            cut = max(1, int(length * self._options.compaction_ratio))
            cut_state = self.project_at(cut)

        self._truncate_future()
        if cut is not None:
            self._compact(cut, cut_state)

        self._index = self._log.append(event)
        interval = self._interval
        if interval is not None and is_checkpoint_position(self._index, interval):
            self._checkpoints.set(self._index, new_state)

        self._notify(self._listeners, event, new_state)
        return event

    def _build_event(self, event_type: str, payload: Mapping[str, Any] | None) -> E:
        timestamp = self._clock()
        if self._index >= 0:
            # Keep generated timestamps non-decreasing along the active log
            timestamp = max(timestamp, self._log[self._index].timestamp)

        data: dict[str, Any] = {"type": event_type, "timestamp": timestamp}
        if payload is not None:
            data["payload"] = dict(payload)
        return self._event_adapter.validate_python(data)

    def _truncate_future(self) -> None:
        if self._index >= self._log.last_position:
            return
        dropped = self._log.truncate_after(self._index)
        stale = self._checkpoints.discard_after(self._index)
        logger.debug(
            f"Discarded {dropped} undone events and {stale} checkpoints after position {self._index}"
        )

    def _compact(self, cut: int, cut_state: S) -> None:
        """Drop events before ``cut``, seeding position 0 with their state."""
        dropped = self._log.drop_before(cut)
        self._checkpoints.clear()
        self._seed = Checkpoint(0, cut_state)
        self._checkpoints.set(0, cut_state)
        self._index -= dropped
        logger.info(
            f"Compacted event log: dropped {dropped} events, {len(self._log)} retained"
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Projection
    # ─────────────────────────────────────────────────────────────────────────

    def project(self) -> S:
        """State at the cursor."""
        return self.project_at(self._index)

    def project_at(self, position: int) -> S:
        """State after folding every event through ``position``.

        Positions past the end clamp to the newest event. Negative positions
        give the initial state on an uncompacted log.

        Raises:
            EvictedPositionError: If position precedes the compaction floor
        """
        position = min(position, self._log.last_position)
        if position < self.floor:
            if self.compacted:
                raise EvictedPositionError(position, self.floor)
            return self._initial_state
        return project_at(self._log, self._checkpoints, self._reducer, position)

    def checkpoint_positions(self) -> list[int]:
        return self._checkpoints.positions()

    # ─────────────────────────────────────────────────────────────────────────
    # Cursor movement
    # ─────────────────────────────────────────────────────────────────────────

    def can_undo(self) -> bool:
        return self._index > self.floor

    def can_redo(self) -> bool:
        return self._index < self._log.last_position

    def undo(self) -> bool:
        """Step the cursor back one event. Returns False if nothing to undo."""
        if not self.can_undo():
            return False
        self._move(self._index - 1, "undo")
        return True

    def redo(self) -> bool:
        """Step the cursor forward one event. Returns False at the end."""
        if not self.can_redo():
            return False
        self._move(self._index + 1, "redo")
        return True

    def navigate(self, index: int) -> bool:
        """Move the cursor to ``index``, clamped to the reachable range.

        Returns True if the cursor moved. A no-change navigation does not
        notify subscribers.
        """
        target = max(self.floor, min(index, self._log.last_position))
        if target == self._index:
            return False
        self._move(target, "navigate")
        return True

    def navigate_to_time(self, timestamp: int) -> bool:
        """Move the cursor to the last event (in log order) at or before timestamp."""
        return self.navigate(self.position_at_time(timestamp))

    def position_at_time(self, timestamp: int) -> int:
        """Greatest log position whose event timestamp is <= timestamp, or -1."""
        return self._log.last_position_at_or_before(timestamp)

    def rewind(self, steps: int = 1) -> bool:
        """Move the cursor back ``steps`` events."""
        return self.navigate(self._index - steps)

    def _move(self, target: int, kind: CursorMoveKind) -> None:
        state = self.project_at(target)
        move = CursorMove(kind=kind, from_index=self._index, to_index=target)
        self._index = target
        self._notify(self._cursor_listeners, move, state)

    # ─────────────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────────────

    def get_events(self) -> list[E]:
        """Full log, including undone events."""
        return self._log.to_list()

    def get_active_events(self) -> list[E]:
        """Events up to and including the cursor."""
        return self._log.slice(0, self._index + 1)

    def events_between(self, start: int, end: int) -> list[E]:
        """Events whose timestamp falls in [start, end] (milliseconds)."""
        return self._log.events_between(start, end)

    def stats(self) -> StoreStats:
        size = sum(len(self._event_adapter.dump_json(e)) for e in self._log)
        return StoreStats(
            event_count=len(self._log),
            active_event_count=self._index + 1,
            checkpoint_count=len(self._checkpoints),
            size_bytes=size,
            oldest_event=self._log[0].timestamp if len(self._log) else None,
            newest_event=self._log.last_timestamp,
            compacted=self.compacted,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Metadata
    # ─────────────────────────────────────────────────────────────────────────

    def set_metadata(self, key: str, value: Any) -> None:
        self._metadata[key] = value

    def get_metadata(self, key: str, default: Any = None) -> Any:
        return self._metadata.get(key, default)

    @property
    def metadata(self) -> dict[str, Any]:
        """Copy of all store metadata."""
        return copy.deepcopy(self._metadata)

    # ─────────────────────────────────────────────────────────────────────────
    # Subscriptions
    # ─────────────────────────────────────────────────────────────────────────

    def subscribe(self, listener: AppendListener) -> Callable[[], None]:
        """Call ``listener(event, state)`` after every append.

        Returns:
            Function that removes this subscription
        """
        return self._register(self._listeners, listener)

    def on_cursor_moved(self, listener: CursorListener) -> Callable[[], None]:
        """Call ``listener(move, state)`` after undo, redo and navigation.

        Returns:
            Function that removes this subscription
        """
        return self._register(self._cursor_listeners, listener)

    @staticmethod
    def _register(registry: dict, listener: Callable) -> Callable[[], None]:
        token = object()
        registry[token] = listener

        def unsubscribe() -> None:
            registry.pop(token, None)

        return unsubscribe

    @staticmethod
    def _notify(registry: dict, *args: Any) -> None:
        """Invoke every listener in registration order.

        A failing listener does not stop the others. Failures are logged
        and raised together once all listeners ran.
        """
        errors: list[Exception] = []
        for listener in list(registry.values()):
            try:
                listener(*args)
            except Exception as e:
                logger.warning(f"Listener {listener!r} raised {type(e).__name__}: {e}")
                errors.append(e)
        if errors:
            raise ListenerError(errors) from errors[0]

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle: clear, fork, snapshot, restore
    # ─────────────────────────────────────────────────────────────────────────

    def clear(self) -> None:
        """Drop all events, checkpoints and metadata."""
        self._log.clear()
        self._index = INITIAL_POSITION
        self._seed = Checkpoint(INITIAL_POSITION, self._initial_state)
        self._checkpoints.clear()
        self._checkpoints.set(self._seed.position, self._seed.state)
        self._metadata.clear()

    def fork(self) -> "EventStore[E, S]":
        """Independent copy of the active history.

        Undone events are not carried over and subscribers stay with the
        original store.
        """
        forked: EventStore[E, S] = EventStore(
            self._initial_state,
            self._reducer,
            self._options,
            event_model=self._event_model,
            state_model=self._state_model,
            clock=self._clock,
        )
        forked._log = EventLog(self.get_active_events())
        forked._index = forked._log.last_position
        forked._seed = self._seed
        forked._checkpoints = rebuild_checkpoints(
            forked._log, self._reducer, self._seed, self._interval
        )
        forked._metadata = copy.deepcopy(self._metadata)
        logger.info(f"Forked store at position {self._index} ({len(forked._log)} events)")
        return forked

    def snapshot(self) -> Snapshot:
        """Persisted form: full log, cursor, projected state, capture time."""
        return self._snapshot_model(
            events=self._log.to_list(),
            index=self._index,
            state=self.project(),
            timestamp=self._clock(),
            metadata=copy.deepcopy(self._metadata),
            seed_state=self._seed.state if self.compacted else None,
        )

    def restore(self, snapshot: Snapshot | Mapping[str, Any], verify: bool = True) -> None:
        """Replace log and cursor with a snapshot's contents.

        Everything is rebuilt on scratch structures first; the store is only
        modified once the snapshot is known to be consistent.

        Args:
            snapshot: Snapshot model or its plain-dict form
            verify: Check that replaying the events reproduces snapshot.state

        Raises:
            SnapshotError: If the snapshot is malformed, its events cannot be
                replayed, or (with verify) the replayed state differs
        """
        parsed = self._parse_snapshot(snapshot)

        events = parsed.events
        ids = [e.id for e in events]
        if len(set(ids)) != len(ids):
            raise SnapshotError("Snapshot contains duplicate event ids")

        log: EventLog = EventLog(events)
        if parsed.seed_state is not None:
            seed = Checkpoint(0, parsed.seed_state)
        else:
            seed = Checkpoint(INITIAL_POSITION, self._initial_state)

        try:
            checkpoints = rebuild_checkpoints(log, self._reducer, seed, self._interval)
            if parsed.index < 0:
                state = self._initial_state
            else:
                state = project_at(log, checkpoints, self._reducer, parsed.index)
        except Exception as e:
            raise SnapshotError(f"Replaying snapshot events failed: {e}") from e

        if verify and state != parsed.state:
            raise SnapshotError(
                f"Snapshot state does not match replayed state at index {parsed.index}"
            )

        self._log = log
        self._index = parsed.index
        self._seed = seed
        self._checkpoints = checkpoints
        self._metadata = copy.deepcopy(parsed.metadata)
        logger.info(f"Restored {len(log)} events at index {parsed.index}")

    def _parse_snapshot(self, snapshot: Snapshot | Mapping[str, Any]) -> Snapshot:
        if isinstance(snapshot, Snapshot):
            snapshot = {
                "events": list(snapshot.events),
                "index": snapshot.index,
                "state": snapshot.state,
                "timestamp": snapshot.timestamp,
                "metadata": snapshot.metadata,
                "seed_state": snapshot.seed_state,
            }
        if not isinstance(snapshot, Mapping):
            raise SnapshotError(
                f"Expected a Snapshot or mapping, got {type(snapshot).__name__}"
            )
        try:
            parsed = self._snapshot_model.model_validate(snapshot)
            # Events typed by another model (e.g. read_snapshot uses the base
            # Event) are re-parsed from their dumped form into event_model
            raw = [e.model_dump() if isinstance(e, BaseModel) else e for e in parsed.events]
            events = self._events_adapter.validate_python(raw)
        except ValidationError as e:
            raise SnapshotError(f"Malformed snapshot: {e}") from e
        return parsed.model_copy(update={"events": events})
