"""Shared fixtures for the worktime-tracker tests."""

import os

import pytest
from tests.helpers import FakeClock, SessionRecorder

from worktime_tracker.engine import SessionEngine, TrackerPolicy
from worktime_tracker.ids import SequentialIdGenerator
from worktime_tracker.store import MemoryStore


@pytest.fixture(autouse=True)
def clean_tuning_env(monkeypatch):
    """Environment overrides from the developer's shell must not leak in."""
    for name in list(os.environ):
        if name.startswith("WORKTIME_"):
            monkeypatch.delenv(name)


@pytest.fixture(autouse=True)
def reset_config():
    """Reset the global config to default after each test.

    This prevents test pollution where one test's config changes
    affect subsequent tests.
    """
    from aw_core.config import load_config_toml

    from worktime_tracker import config as config_module

    yield

    config_module.config = load_config_toml("worktime-tracker", config_module.default_config)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def recorder() -> SessionRecorder:
    return SessionRecorder()


@pytest.fixture
def id_generator() -> SequentialIdGenerator:
    # Shared across engines in a test, so "restarts" never reuse an id
    return SequentialIdGenerator()


@pytest.fixture
def make_engine(clock, store, recorder, id_generator):
    """Factory for engines sharing the test's clock, store and recorder.

    Calling it twice simulates a process restart against the same storage.
    """

    def _make(policy: TrackerPolicy | None = None, **kwargs) -> SessionEngine:
        kwargs.setdefault("store", store)
        kwargs.setdefault("on_session_complete", recorder)
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("id_generator", id_generator)
        return SessionEngine(policy=policy or TrackerPolicy(), **kwargs)

    return _make


@pytest.fixture
def engine(make_engine) -> SessionEngine:
    return make_engine()
