"""Tests for bounded log length and compaction."""

import pytest

from chronolog.errors import EvictedPositionError
from chronolog.store import EventStore

from conftest import counter_reducer


def make_store(clock, **options):
    return EventStore({"v": 0}, counter_reducer, clock=clock, **options)


class TestCompaction:
    """Appending past max_events compacts the log to its tail."""

    def test_state_survives_eviction(self, clock):
        store = make_store(clock, max_events=5)
        for _ in range(10):
            store.append("inc", {"amount": 1})

        assert len(store.get_events()) <= 5
        assert store.project() == {"v": 10}

    @pytest.mark.parametrize("enable_checkpoints", [True, False])
    def test_state_survives_without_interval_checkpoints(self, clock, enable_checkpoints):
        store = make_store(clock, max_events=4, enable_checkpoints=enable_checkpoints)
        for amount in range(1, 21):
            store.append("inc", {"amount": amount})
        assert store.project() == {"v": 210}
        assert len(store.get_events()) <= 4

    def test_compaction_installs_single_seed(self, clock):
        store = make_store(clock, max_events=4, checkpoint_interval=1)
        events = [store.append("inc", {"amount": n}) for n in range(1, 5)]
        assert store.checkpoint_positions() == [-1, 0, 1, 2, 3]

        store.append("inc", {"amount": 5})

        # Cut at len * 0.5 = 2: events[2] becomes position 0
        kept = store.get_events()
        assert kept[0].id == events[2].id
        assert len(kept) == 3
        assert store.index == 2
        assert store.project_at(0) == {"v": 6}
        assert store.checkpoint_positions()[0] == 0
        assert store.compacted is True
        assert store.floor == 0

    def test_cursor_follows_same_logical_event(self, clock):
        store = make_store(clock, max_events=6)
        for n in range(6):
            store.append("inc", {"amount": 1})
        last_before = store.get_events()[-1]

        new = store.append("inc", {"amount": 1})
        events = store.get_events()
        assert events[store.index].id == new.id
        assert events[store.index - 1].id == last_before.id

    def test_custom_compaction_ratio(self, clock):
        store = make_store(clock, max_events=10, compaction_ratio=0.8)
        for _ in range(11):
            store.append("inc", {"amount": 1})
        # cut = int(10 * 0.8) = 8, so 2 retained plus the new event
        assert len(store.get_events()) == 3
        assert store.project() == {"v": 11}

    def test_compaction_after_undo_uses_truncated_length(self, clock):
        store = make_store(clock, max_events=4)
        for _ in range(4):
            store.append("inc", {"amount": 1})
        store.undo()
        store.undo()

        # Truncated length is 2, below the cap, so no compaction
        store.append("inc", {"amount": 10})
        assert store.compacted is False
        assert len(store.get_events()) == 3
        assert store.project() == {"v": 12}

    def test_minimum_max_events(self, clock):
        store = make_store(clock, max_events=2)
        for _ in range(9):
            store.append("inc", {"amount": 1})
        assert len(store.get_events()) <= 2
        assert store.project() == {"v": 9}


class TestEvictedPositions:
    """Positions before the compaction floor are unreachable."""

    @pytest.fixture
    def compacted(self, clock):
        store = make_store(clock, max_events=4)
        for _ in range(5):
            store.append("inc", {"amount": 1})
        return store

    def test_navigate_clamps_to_floor(self, compacted):
        compacted.navigate(-1)
        assert compacted.index == 0
        assert compacted.project() == compacted.project_at(0)

    def test_undo_stops_at_floor(self, compacted):
        while compacted.undo():
            pass
        assert compacted.index == 0
        assert compacted.can_undo() is False

    def test_project_before_floor_raises(self, compacted):
        with pytest.raises(EvictedPositionError) as exc_info:
            compacted.project_at(-1)
        assert exc_info.value.floor == 0

    def test_navigate_to_time_before_retained_events_clamps(self, compacted):
        compacted.navigate_to_time(0)
        assert compacted.index == 0
