"""Shared test fixtures for worktrack."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from PyQt6.QtCore import QCoreApplication

# Ensure the project root is importable
sys.path.insert(0, str(Path(__file__).parent.parent))

from clock import ManualClock
from config import BoardConfig
from errors import PersistenceError
from main import WorkTracker
from storage import MemoryStore

T0 = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone(timedelta(hours=1)))


class FlakyStore(MemoryStore):
    """MemoryStore whose reads and writes can be made to fail on demand."""

    def __init__(self):
        super().__init__()
        self.fail_keys = set()
        self.fail_reads = set()

    def get(self, key):
        if key in self.fail_reads:
            raise PersistenceError(f"I/O error reading {key}")
        return super().get(key)

    def set(self, key, value):
        if key in self.fail_keys:
            raise PersistenceError(f"disk full writing {key}")
        super().set(key, value)

    def remove(self, key):
        if key in self.fail_keys:
            raise PersistenceError(f"disk full removing {key}")
        super().remove(key)


@pytest.fixture(scope="session", autouse=True)
def qapp():
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


@pytest.fixture
def clock():
    return ManualClock(T0)


@pytest.fixture
def store():
    return FlakyStore()


@pytest.fixture
def config():
    cfg = BoardConfig()
    cfg.resolve()
    return cfg


@pytest.fixture
def tracker(store, clock, config):
    t = WorkTracker(store, clock=clock, config=config)
    t.load()
    yield t
    t.timer._stop_ticking()


@pytest.fixture
def task(tracker):
    return tracker.engine.create_task("Write report", project="docs", estimated_hours=4)
