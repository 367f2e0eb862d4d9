"""
Shared fixtures: a fresh in-memory database per test and a clock the test
controls, so reported timestamps are deterministic.
"""

import pytest

from timetravel import HookRegistry, init_timetravel, make_engine


class FakeClock:
    def __init__(self, now: int = 10_000):
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine():
    eng = make_engine("sqlite://")
    yield eng
    eng.dispose()


@pytest.fixture
def hooks():
    return HookRegistry()


@pytest.fixture
def service(engine, clock, hooks):
    return init_timetravel(engine, clock=clock, hooks=hooks)


@pytest.fixture
def store(service):
    return service.store


@pytest.fixture
def chain(store):
    """Record 1: created at t=100, updated at t=200, corrected at t=150."""
    store.create(1, {"hello": "world"}, 100)
    store.apply_update(1, 200, {"status": "ok"})
    store.apply_update(1, 150, {"hello": "world2"})
    return store
