"""Tests for projection and checkpoint rebuilding."""

import random

import pytest

from chronolog.checkpoints import Checkpoint, CheckpointIndex
from chronolog.errors import EvictedPositionError
from chronolog.events import EventLog
from chronolog.models import Event
from chronolog.projection import (
    checkpoint_positions,
    fold,
    project_at,
    rebuild_checkpoints,
)
from chronolog.store import EventStore

from conftest import counter_reducer, full_fold


def make_log(amounts: list[int]) -> EventLog:
    return EventLog(
        Event(id=f"ev{i}", timestamp=i, type="inc", payload={"amount": a})
        for i, a in enumerate(amounts)
    )


def test_fold_empty_returns_seed():
    assert fold(counter_reducer, {"v": 3}, []) == {"v": 3}


def test_fold_applies_in_order():
    events = list(make_log([1, 2, 3]))
    events.append(Event(type="reset"))
    assert fold(counter_reducer, {"v": 0}, events) == {"v": 0}


class TestCheckpointPositions:
    """Tests for the interval checkpoint policy."""

    def test_multiples_of_interval(self):
        assert list(checkpoint_positions(25, 10)) == [0, 10, 20]

    def test_interval_one(self):
        assert list(checkpoint_positions(4, 1)) == [0, 1, 2, 3]

    def test_start_skips_seed(self):
        assert list(checkpoint_positions(25, 10, start=1)) == [10, 20]

    def test_empty_log(self):
        assert list(checkpoint_positions(0, 10)) == []


class TestProjectAt:
    """Tests for the module-level project_at()."""

    def test_seeds_from_nearest_checkpoint(self):
        log = make_log([1, 1, 1, 1])
        checkpoints = CheckpointIndex()
        checkpoints.set(-1, {"v": 0})
        # Deliberately distinct from the real prefix to prove it is used
        checkpoints.set(1, {"v": 100})
        assert project_at(log, checkpoints, counter_reducer, 3) == {"v": 102}
        assert project_at(log, checkpoints, counter_reducer, 0) == {"v": 1}

    def test_missing_seed_raises(self):
        log = make_log([1, 1])
        checkpoints = CheckpointIndex()
        checkpoints.set(0, {"v": 1})
        with pytest.raises(EvictedPositionError):
            project_at(log, checkpoints, counter_reducer, -1)


class TestRebuildCheckpoints:
    """Tests for rebuild_checkpoints()."""

    def test_rebuild_matches_prefix_folds(self):
        amounts = [3, 1, 4, 1, 5, 9, 2, 6]
        log = make_log(amounts)
        index = rebuild_checkpoints(log, counter_reducer, Checkpoint(-1, {"v": 0}), 3)

        assert index.positions() == [-1, 0, 3, 6]
        for checkpoint in index:
            expected = {"v": sum(amounts[: checkpoint.position + 1])}
            assert checkpoint.state == expected

    def test_disabled_keeps_only_seed(self):
        log = make_log([1, 2, 3])
        index = rebuild_checkpoints(log, counter_reducer, Checkpoint(-1, {"v": 0}), None)
        assert index.positions() == [-1]

    def test_compacted_seed(self):
        log = make_log([1, 2, 3, 4, 5])
        index = rebuild_checkpoints(log, counter_reducer, Checkpoint(0, {"v": 50}), 2)
        assert index.positions() == [0, 2, 4]
        assert index.get(2).state == {"v": 55}
        assert index.get(4).state == {"v": 64}


@pytest.mark.parametrize(
    "options",
    [
        {"checkpoint_interval": 1},
        {"checkpoint_interval": 10},
        {"enable_checkpoints": False},
    ],
    ids=["interval-1", "interval-10", "disabled"],
)
class TestCheckpointCorrectness:
    """Checkpoint-seeded projection equals a full fold at every position."""

    def test_every_position_matches_full_fold(self, clock, options):
        store = EventStore({"v": 0}, counter_reducer, clock=clock, **options)
        rng = random.Random(42)
        for _ in range(57):
            if rng.random() < 0.1:
                store.append("reset")
            else:
                store.append("inc", {"amount": rng.randint(-5, 5)})

        for position in range(-1, 57):
            assert store.project_at(position) == full_fold(store, position)

    def test_matches_after_undo_and_branching_append(self, clock, options):
        store = EventStore({"v": 0}, counter_reducer, clock=clock, **options)
        for n in range(30):
            store.append("inc", {"amount": n})
        store.navigate(12)
        for n in range(8):
            store.append("inc", {"amount": 100 + n})

        assert len(store.get_events()) == 21
        for position in range(-1, 21):
            assert store.project_at(position) == full_fold(store, position)
