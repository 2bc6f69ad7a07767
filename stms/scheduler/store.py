"""TaskStore — aiosqlite persistence for tasks and their execution state."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import aiosqlite

from stms.config import settings
from stms.errors import ValidationError
from stms.scheduler.models import RecurrenceRule, Task, TaskStatus

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS tasks (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    type TEXT NOT NULL CHECK (type IN ('keepalive', 'notification')),
    schedule TEXT NOT NULL DEFAULT '',
    config TEXT NOT NULL,
    enabled INTEGER NOT NULL DEFAULT 1,
    created_by TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    last_executed TEXT,
    last_status TEXT CHECK (last_status IN ('success', 'failure'))
)
"""


@dataclass
class EnabledTasks:
    """Result of loading enabled tasks: decoded tasks plus rows that failed.

    ``invalid`` maps task id to the decoding error.
    """

    tasks: list[Task] = field(default_factory=list)
    invalid: dict[str, str] = field(default_factory=dict)


class TaskStore:
    """Persists tasks in SQLite.

    Singleton accessed via ``TaskStore.get()``.  Pass an explicit *db_path*
    for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    _instance: TaskStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or settings.database_path
        self._initialised = False

    @classmethod
    def get(cls) -> TaskStore:
        """Return the shared TaskStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    # -- Internal helpers ------------------------------------------------------

    async def _connect(self) -> aiosqlite.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(self._db_path))
        if not self._initialised:
            await db.execute(_CREATE_TABLE)
            await db.commit()
            self._initialised = True
        return db

    # -- Queries ---------------------------------------------------------------

    async def add_task(self, task: Task) -> Task:
        """Insert a new task. Returns the same task object."""
        db = await self._connect()
        try:
            await db.execute(
                """
                INSERT INTO tasks
                    (id, name, type, schedule, config, enabled, created_by,
                     created_at, updated_at, last_executed, last_status)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                task.to_row(),
            )
            await db.commit()
            logger.info("Added task: %s (%s)", task.name, task.id)
            return task
        finally:
            await db.close()

    async def get_task(self, task_id: str) -> Task | None:
        """Fetch a task by ID, or None if not found."""
        db = await self._connect()
        try:
            cursor = await db.execute("SELECT * FROM tasks WHERE id = ?", (task_id,))
            row = await cursor.fetchone()
            return Task.from_row(row) if row else None
        finally:
            await db.close()

    async def list_enabled(self) -> list[Task]:
        """Return all enabled tasks that decode cleanly, oldest first."""
        return (await self.load_enabled()).tasks

    async def load_enabled(self) -> EnabledTasks:
        """Load enabled tasks, decoding each row on its own.

        A row that fails to decode is logged and reported in ``invalid``
        instead of hiding the other tasks.
        """
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT * FROM tasks WHERE enabled = 1 ORDER BY created_at"
            )
            rows = await cursor.fetchall()
        finally:
            await db.close()

        loaded = EnabledTasks()
        for row in rows:
            try:
                loaded.tasks.append(Task.from_row(row))
            except (ValidationError, ValueError, KeyError, TypeError) as exc:
                logger.warning("Skipping malformed task %s: %s", row[0], exc)
                loaded.invalid[row[0]] = str(exc) or type(exc).__name__
        return loaded

    async def update_execution_state(
        self,
        task_id: str,
        last_executed: str,
        last_status: TaskStatus,
        rule: RecurrenceRule | None = None,
    ) -> bool:
        """Record the outcome of an execution and, optionally, the advanced rule.

        Returns True if the task exists.
        """
        db = await self._connect()
        try:
            if rule is None:
                cursor = await db.execute(
                    "UPDATE tasks SET last_executed = ?, last_status = ? WHERE id = ?",
                    (last_executed, TaskStatus(last_status).value, task_id),
                )
            else:
                cursor = await db.execute("SELECT config FROM tasks WHERE id = ?", (task_id,))
                row = await cursor.fetchone()
                if row is None:
                    return False
                config = json.loads(row[0])
                config["rule"] = rule.to_dict()
                cursor = await db.execute(
                    """
                    UPDATE tasks SET last_executed = ?, last_status = ?, config = ?
                    WHERE id = ?
                    """,
                    (last_executed, TaskStatus(last_status).value, json.dumps(config), task_id),
                )
            await db.commit()
            return cursor.rowcount > 0
        finally:
            await db.close()
