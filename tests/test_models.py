"""Tests for models: options validation and typed event variants."""

from typing import Annotated, Literal, Union

import pytest
from pydantic import BaseModel, Field, ValidationError

from chronolog.constants import DEFAULT_CHECKPOINT_INTERVAL, DEFAULT_MAX_EVENTS
from chronolog.models import Event, Snapshot, StoreOptions, generate_id
from chronolog.snapshots import read_snapshot, write_snapshot
from chronolog.store import EventStore


# --- Typed events ---


class AmountPayload(BaseModel):
    amount: int


class Increment(Event):
    type: Literal["inc"] = "inc"
    payload: AmountPayload


class Reset(Event):
    type: Literal["reset"] = "reset"


CounterEvent = Annotated[Union[Increment, Reset], Field(discriminator="type")]


def typed_reducer(state: int, event) -> int:
    if isinstance(event, Increment):
        return state + event.payload.amount
    if isinstance(event, Reset):
        return 0
    raise TypeError(f"Unhandled event {event.type}")


class TestStoreOptions:
    """Tests for StoreOptions defaults and validation."""

    def test_defaults(self):
        options = StoreOptions()
        assert options.max_events == DEFAULT_MAX_EVENTS
        assert options.enable_checkpoints is True
        assert options.checkpoint_interval == DEFAULT_CHECKPOINT_INTERVAL
        assert options.compaction_ratio == 0.5
        assert options.redact_fields == ()

    @pytest.mark.parametrize(
        "bad",
        [
            {"max_events": 1},
            {"checkpoint_interval": 0},
            {"compaction_ratio": 0.0},
            {"compaction_ratio": 1.0},
            {"unknown_option": True},
        ],
    )
    def test_rejects_invalid(self, bad):
        with pytest.raises(ValidationError):
            StoreOptions(**bad)

    def test_store_keyword_overrides(self):
        store = EventStore(0, typed_reducer, max_events=50)
        assert store.options.max_events == 50

    def test_overrides_applied_over_options(self):
        base = StoreOptions(max_events=50, checkpoint_interval=7)
        store = EventStore(0, typed_reducer, base, checkpoint_interval=3)
        assert store.options.max_events == 50
        assert store.options.checkpoint_interval == 3

    def test_invalid_override_rejected(self):
        with pytest.raises(ValidationError):
            EventStore(0, typed_reducer, StoreOptions(), max_events=0)


class TestTypedEvents:
    """A discriminated union closes the event tag space."""

    def test_append_builds_variant(self):
        store = EventStore(0, typed_reducer, event_model=CounterEvent)
        event = store.append("inc", {"amount": 4})
        assert isinstance(event, Increment)
        assert event.payload.amount == 4
        assert store.project() == 4

        assert isinstance(store.append("reset"), Reset)
        assert store.project() == 0

    def test_unknown_tag_rejected(self):
        store = EventStore(0, typed_reducer, event_model=CounterEvent)
        with pytest.raises(ValidationError):
            store.append("dec", {"amount": 1})
        assert store.get_events() == []

    def test_bad_payload_rejected(self):
        store = EventStore(0, typed_reducer, event_model=CounterEvent)
        with pytest.raises(ValidationError):
            store.append("inc", {"amount": "lots"})

    def test_restore_parses_variants(self):
        store = EventStore(0, typed_reducer, event_model=CounterEvent)
        store.append("inc", {"amount": 2})
        store.append("inc", {"amount": 5})
        data = store.snapshot().model_dump(mode="json")

        fresh = EventStore(0, typed_reducer, event_model=CounterEvent, state_model=int)
        fresh.restore(data)
        assert all(isinstance(e, Increment) for e in fresh.get_events())
        assert fresh.project() == 7

    def test_restore_from_snapshot_file(self, tmp_path):
        store = EventStore(0, typed_reducer, event_model=CounterEvent)
        store.append("inc", {"amount": 5})
        store.append("inc", {"amount": 3})
        path = write_snapshot(tmp_path / "typed.json", store.snapshot())

        fresh = EventStore(0, typed_reducer, event_model=CounterEvent, state_model=int)
        fresh.restore(read_snapshot(path))

        assert [type(e) for e in fresh.get_events()] == [Increment, Increment]
        assert [e.id for e in fresh.get_events()] == [e.id for e in store.get_events()]
        assert fresh.project() == 8

    def test_restore_typed_snapshot_into_generic_store(self):
        store = EventStore(0, typed_reducer, event_model=CounterEvent)
        store.append("inc", {"amount": 4})

        def generic_reducer(state, event):
            return state + event.payload["amount"]

        fresh = EventStore(0, generic_reducer)
        fresh.restore(store.snapshot())
        assert type(fresh.get_events()[0]) is Event
        assert fresh.project() == 4

    def test_single_model_subclass(self):
        store = EventStore(0, typed_reducer, event_model=Increment)
        store.append("inc", {"amount": 3})
        with pytest.raises(ValidationError):
            store.append("reset")


class TestSnapshotModel:
    """Validation rules on the persisted form."""

    def test_seed_state_requires_events(self):
        with pytest.raises(ValidationError):
            Snapshot(events=[], index=-1, state=1, seed_state=1)

    def test_compacted_snapshot_index_not_initial(self):
        with pytest.raises(ValidationError):
            Snapshot(
                events=[Event(type="inc")],
                index=-1,
                state=1,
                seed_state=1,
            )


def test_generate_id_is_sortable():
    first = generate_id()
    second = generate_id()
    assert len(first) == 26
    assert first != second
