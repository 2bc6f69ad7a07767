"""Tests for TaskStore — aiosqlite CRUD and execution state."""

from datetime import UTC, datetime

import aiosqlite

from helpers import make_keepalive, make_notification, make_rule
from stms.scheduler.models import TaskStatus
from stms.scheduler.store import TaskStore

# -- add_task / get_task -------------------------------------------------------


async def test_add_and_get_task(task_store: TaskStore) -> None:
    await task_store.add_task(make_keepalive("t1", "Ping"))

    fetched = await task_store.get_task("t1")
    assert fetched is not None
    assert fetched.name == "Ping"
    assert fetched.config.url == "https://example.com/health"


async def test_get_task_not_found(task_store: TaskStore) -> None:
    assert await task_store.get_task("missing") is None


# -- list_enabled --------------------------------------------------------------


async def test_list_enabled_skips_disabled(task_store: TaskStore) -> None:
    await task_store.add_task(make_keepalive("t1", created_at="2024-01-02T00:00:00+00:00"))
    await task_store.add_task(make_keepalive("t2", created_at="2024-01-01T00:00:00+00:00"))
    await task_store.add_task(make_keepalive("t3", enabled=False))

    tasks = await task_store.list_enabled()
    assert [t.id for t in tasks] == ["t2", "t1"]


async def test_list_enabled_empty(task_store: TaskStore) -> None:
    assert await task_store.list_enabled() == []


async def test_load_enabled_reports_malformed_rows(task_store: TaskStore) -> None:
    await task_store.add_task(make_keepalive("good"))
    await task_store.add_task(make_keepalive("bad"))
    async with aiosqlite.connect(task_store._db_path) as db:
        await db.execute("UPDATE tasks SET config = ? WHERE id = ?", ("{not json", "bad"))
        await db.commit()

    loaded = await task_store.load_enabled()

    assert [t.id for t in loaded.tasks] == ["good"]
    assert list(loaded.invalid) == ["bad"]
    assert [t.id for t in await task_store.list_enabled()] == ["good"]


# -- update_execution_state ----------------------------------------------------


async def test_update_execution_state(task_store: TaskStore) -> None:
    await task_store.add_task(make_keepalive("t1"))

    ok = await task_store.update_execution_state(
        "t1", "2024-03-01T10:00:00+00:00", TaskStatus.FAILURE
    )
    assert ok is True

    task = await task_store.get_task("t1")
    assert task.last_executed == "2024-03-01T10:00:00+00:00"
    assert task.last_status is TaskStatus.FAILURE


async def test_update_execution_state_missing_task(task_store: TaskStore) -> None:
    ok = await task_store.update_execution_state(
        "nope", "2024-03-01T10:00:00+00:00", TaskStatus.SUCCESS
    )
    assert ok is False


async def test_update_execution_state_persists_rule(task_store: TaskStore) -> None:
    rule = make_rule(datetime(2024, 1, 31, tzinfo=UTC), auto_renew=True)
    await task_store.add_task(make_notification("n1", rule=rule))

    advanced = rule.with_next_due(datetime(2024, 2, 29, tzinfo=UTC))
    ok = await task_store.update_execution_state(
        "n1", "2024-01-31T00:00:00+00:00", TaskStatus.SUCCESS, advanced
    )
    assert ok is True

    task = await task_store.get_task("n1")
    assert task.rule == advanced
    assert task.config.message == "Due on {due_date}"
    assert task.last_status is TaskStatus.SUCCESS


async def test_update_rule_for_missing_task(task_store: TaskStore) -> None:
    rule = make_rule(datetime(2024, 1, 1, tzinfo=UTC))
    ok = await task_store.update_execution_state(
        "nope", "2024-01-01T00:00:00+00:00", TaskStatus.SUCCESS, rule
    )
    assert ok is False


# -- Singleton -----------------------------------------------------------------


def test_get_returns_shared_instance() -> None:
    assert TaskStore.get() is TaskStore.get()
    first = TaskStore.get()
    TaskStore._reset()
    assert TaskStore.get() is not first
