"""Snapshot files on disk.

Snapshots are written as JSON in the interop layout
``{events, index, state, timestamp, metadata, seed_state}``.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .errors import SnapshotError
from .models import Event, Snapshot

logger = logging.getLogger(__name__)


def write_snapshot(path: Path, snapshot: Snapshot) -> Path:
    """Write snapshot to path as JSON, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(snapshot.model_dump_json(indent=2))
    logger.debug(f"Wrote snapshot with {len(snapshot.events)} events to {path}")
    return path


def read_snapshot_data(path: Path) -> dict[str, Any]:
    """Read a snapshot file as a plain dict, suitable for EventStore.restore().

    Raises:
        SnapshotError: If the file is missing or not a JSON object
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text())
    except FileNotFoundError as e:
        raise SnapshotError(f"Snapshot file not found: {path}") from e
    except (json.JSONDecodeError, OSError) as e:
        raise SnapshotError(f"Cannot read snapshot {path}: {e}") from e

    if not isinstance(data, dict):
        raise SnapshotError(f"Snapshot {path} is not a JSON object")
    return data


def read_snapshot(path: Path) -> Snapshot:
    """Read and validate a snapshot file with generic event and state types.

    Raises:
        SnapshotError: If the file is missing or malformed
    """
    data = read_snapshot_data(path)
    try:
        return Snapshot[Event, Any].model_validate(data)
    except ValidationError as e:
        raise SnapshotError(f"Malformed snapshot {path}: {e}") from e
