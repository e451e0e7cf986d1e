"""chronolog - event-sourced state container with time travel."""

from .checkpoints import Checkpoint, CheckpointIndex
from .errors import ChronologError, EvictedPositionError, ListenerError, SnapshotError
from .events import EventLog
from .models import CursorMove, Event, Snapshot, StoreOptions, StoreStats
from .replay import Replay, generate_replay, playback, redact, run_playback
from .snapshots import read_snapshot, write_snapshot
from .store import EventStore
from .time_travel import TimeTraveler

__version__ = "0.1.0"

__all__ = [
    "Checkpoint",
    "CheckpointIndex",
    "ChronologError",
    "CursorMove",
    "Event",
    "EventLog",
    "EventStore",
    "EvictedPositionError",
    "ListenerError",
    "Replay",
    "Snapshot",
    "SnapshotError",
    "StoreOptions",
    "StoreStats",
    "TimeTraveler",
    "generate_replay",
    "read_snapshot",
    "playback",
    "redact",
    "run_playback",
    "write_snapshot",
]
