"""LogStore — append-only aiosqlite storage for execution logs."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import aiosqlite

from stms.config import settings
from stms.errors import DuplicateLogError
from stms.scheduler.models import ExecutionLog

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS execution_logs (
    id TEXT PRIMARY KEY,
    task_id TEXT NOT NULL,
    execution_time TEXT NOT NULL,
    status TEXT NOT NULL CHECK (status IN ('success', 'failure')),
    response_time INTEGER,
    status_code INTEGER,
    error_message TEXT,
    details TEXT
)
"""

_CREATE_INDEX = """
CREATE INDEX IF NOT EXISTS idx_execution_logs_task
    ON execution_logs (task_id, execution_time)
"""


class LogStore:
    """Stores execution logs. Rows are inserted once and never updated."""

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or settings.database_path
        self._initialised = False

    async def _connect(self) -> aiosqlite.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(self._db_path))
        if not self._initialised:
            await db.execute(_CREATE_TABLE)
            await db.execute(_CREATE_INDEX)
            await db.commit()
            self._initialised = True
        return db

    async def insert(self, log: ExecutionLog) -> ExecutionLog:
        """Append a log. Raises DuplicateLogError if the id is already taken."""
        db = await self._connect()
        try:
            try:
                await db.execute(
                    """
                    INSERT INTO execution_logs
                        (id, task_id, execution_time, status, response_time,
                         status_code, error_message, details)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    log.to_row(),
                )
            except aiosqlite.IntegrityError as exc:
                raise DuplicateLogError(log.id) from exc
            await db.commit()
            return log
        finally:
            await db.close()

    async def get(self, log_id: str) -> ExecutionLog | None:
        """Fetch a log by ID, or None if not found."""
        db = await self._connect()
        try:
            cursor = await db.execute("SELECT * FROM execution_logs WHERE id = ?", (log_id,))
            row = await cursor.fetchone()
            return ExecutionLog.from_row(row) if row else None
        finally:
            await db.close()

    async def list_for_task(self, task_id: str, limit: int = 100) -> list[ExecutionLog]:
        """Return a task's most recent logs, newest first."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                """
                SELECT * FROM execution_logs WHERE task_id = ?
                ORDER BY execution_time DESC, rowid DESC LIMIT ?
                """,
                (task_id, limit),
            )
            rows = await cursor.fetchall()
            return [ExecutionLog.from_row(row) for row in rows]
        finally:
            await db.close()
