"""Shared test fixtures."""

from pathlib import Path

import pytest

from stms.notifications.router import NotificationRouter
from stms.scheduler.log_store import LogStore
from stms.scheduler.store import TaskStore


@pytest.fixture
def task_store(tmp_path: Path) -> TaskStore:
    """Create a TaskStore backed by a temp database."""
    return TaskStore(db_path=tmp_path / "test.db")


@pytest.fixture
def log_store(tmp_path: Path) -> LogStore:
    """Create a LogStore backed by a temp database."""
    return LogStore(db_path=tmp_path / "test.db")


@pytest.fixture(autouse=True)
def _reset_singletons():
    """Keep singleton state from leaking between tests."""
    TaskStore._reset()
    NotificationRouter._reset()
    yield
    TaskStore._reset()
    NotificationRouter._reset()
