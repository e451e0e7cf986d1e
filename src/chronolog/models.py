"""Core data models for chronolog.

Uses Pydantic v2 for validation, ULID for sortable unique IDs.
"""

import copy
from collections.abc import Mapping
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Generic, Literal, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializerFunctionWrapHandler,
    field_serializer,
    field_validator,
    model_validator,
)
from ulid import ULID

from .constants import (
    DEFAULT_CHECKPOINT_INTERVAL,
    DEFAULT_CHECKPOINTS_ENABLED,
    DEFAULT_COMPACTION_RATIO,
    DEFAULT_MAX_EVENTS,
    INITIAL_POSITION,
    MIN_MAX_EVENTS,
)

EventT = TypeVar("EventT")
StateT = TypeVar("StateT")


def generate_id() -> str:
    """Generate a ULID (sortable, unique identifier)."""
    return str(ULID())


def now_ms() -> int:
    """Get current UTC wall-clock time in milliseconds."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def freeze(value: Any) -> Any:
    """Deep read-only copy: mappings become proxies, lists become tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    return copy.deepcopy(value)


def thaw(value: Any) -> Any:
    """Inverse of freeze, giving plain dicts and lists."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [thaw(v) for v in value]
    return value


class Event(BaseModel):
    """An immutable fact in the event log.

    Mapping payloads are frozen on construction (see ``freeze``), so an
    event handed out by the store cannot be edited to rewrite history.
    Nested lists read back as tuples; serialized forms use plain JSON.

    Applications narrow ``type`` and ``payload`` by subclassing:

        class Increment(Event):
            type: Literal["inc"] = "inc"
            payload: IncrementPayload
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_id)
    timestamp: int = Field(default_factory=now_ms)
    type: str
    payload: dict[str, Any] = Field(default_factory=dict, validate_default=True)

    @field_validator("payload", mode="after")
    @classmethod
    def _freeze_payload(cls, value: Any) -> Any:
        # Model payloads on subclasses keep their own config
        if isinstance(value, Mapping):
            return freeze(value)
        return value

    @field_serializer("payload", mode="wrap")
    def _thaw_payload(self, value: Any, handler: SerializerFunctionWrapHandler) -> Any:
        if isinstance(value, Mapping):
            value = thaw(value)
        return handler(value)


CursorMoveKind = Literal["undo", "redo", "navigate"]


class CursorMove(BaseModel):
    """Notification that the cursor moved without the log changing."""

    model_config = ConfigDict(frozen=True)

    kind: CursorMoveKind
    from_index: int
    to_index: int


class StoreOptions(BaseModel):
    """Configuration accepted at store construction."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_events: int = Field(default=DEFAULT_MAX_EVENTS, ge=MIN_MAX_EVENTS)
    enable_checkpoints: bool = DEFAULT_CHECKPOINTS_ENABLED
    checkpoint_interval: int = Field(default=DEFAULT_CHECKPOINT_INTERVAL, ge=1)
    compaction_ratio: float = Field(default=DEFAULT_COMPACTION_RATIO, gt=0.0, lt=1.0)
    redact_fields: tuple[str, ...] = ()  # used by replay capture only


class Snapshot(BaseModel, Generic[EventT, StateT]):
    """Persisted form of a store.

    ``seed_state`` is only set for a compacted log: it is the state at
    position 0, which the retained events alone cannot reproduce.
    Checkpoints are a derived cache and are never persisted.
    """

    events: list[EventT]
    index: int = Field(ge=INITIAL_POSITION)
    state: StateT
    timestamp: int = Field(default_factory=now_ms)
    metadata: dict[str, Any] = Field(default_factory=dict)
    seed_state: StateT | None = None

    @model_validator(mode="after")
    def _check_index(self) -> "Snapshot":
        if self.index > len(self.events) - 1:
            raise ValueError(
                f"index {self.index} out of range for {len(self.events)} events"
            )
        if self.seed_state is not None and not self.events:
            raise ValueError("seed_state requires at least one event")
        if self.seed_state is not None and self.index < 0:
            raise ValueError("compacted snapshot cannot have index -1")
        return self


class StoreStats(BaseModel):
    """Summary counters for a store."""

    event_count: int
    active_event_count: int
    checkpoint_count: int
    size_bytes: int  # serialized size of the event log
    oldest_event: int | None = None
    newest_event: int | None = None
    compacted: bool = False
