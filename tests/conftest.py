"""Shared test fixtures and helpers for chronolog tests."""

from functools import reduce

import pytest

from chronolog.store import EventStore


class FakeClock:
    """Deterministic millisecond clock; each call advances by ``step``."""

    def __init__(self, start: int = 1_000_000, step: int = 10):
        self.now = start
        self.step = step

    def __call__(self) -> int:
        current = self.now
        self.now += self.step
        return current

    def advance(self, ms: int) -> None:
        self.now += ms


def counter_reducer(state: dict, event) -> dict:
    """Reducer from the canonical inc/reset scenario."""
    if event.type == "inc":
        return {"v": state["v"] + event.payload["amount"]}
    if event.type == "reset":
        return {"v": 0}
    return state


def full_fold(store: EventStore, position: int) -> dict:
    """Fold from the initial state, ignoring checkpoints."""
    events = store.get_events()[: position + 1]
    return reduce(counter_reducer, events, store.initial_state)


# --- Fixtures ---


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    """Fresh counter store with default options."""
    return EventStore({"v": 0}, counter_reducer, clock=clock)


@pytest.fixture
def populated_store(store):
    """Counter store with five inc events of 1..5 (total 15)."""
    for amount in range(1, 6):
        store.append("inc", {"amount": amount})
    return store
