"""TaskExecutor — performs one keepalive check or one notification dispatch."""

from __future__ import annotations

import logging
import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from stms.errors import ExecutionTimeoutError, HttpStatusError, NetworkError
from stms.scheduler.models import (
    ExecutionResult,
    KeepaliveConfig,
    NotificationConfig,
    Task,
    TaskType,
)
from stms.scheduler.http_client import raise_for_status
from stms.scheduler.recorder import MAX_ERROR_MESSAGE_LENGTH
from stms.scheduler.recurrence import pending_due

if TYPE_CHECKING:
    from stms.notifications.router import NotificationRouter
    from stms.scheduler.http_client import HttpClient

logger = logging.getLogger(__name__)


class _Placeholders(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def render(template: str, task: Task, now: datetime) -> str:
    """Fill ``{task_name}``, ``{due_date}`` and ``{now}`` placeholders.

    Unknown placeholders and stray braces are left as written.
    """
    due = None
    if isinstance(task.config, NotificationConfig) and task.config.rule is not None:
        due = pending_due(task.config.rule)
    values = _Placeholders(
        task_name=task.name,
        due_date=due.strftime("%Y-%m-%d") if due else "",
        now=now.strftime("%Y-%m-%d %H:%M"),
    )
    try:
        return template.format_map(values)
    except (ValueError, IndexError, AttributeError):
        return template


class TaskExecutor:
    """Executes one task attempt and reports the outcome as an ExecutionResult.

    Never retries: a failed attempt is simply reported, and the next tick
    decides whether the task runs again.

    Args:
        http_client: Client used for keepalive requests.
        router: NotificationRouter for notification tasks.
    """

    def __init__(self, http_client: HttpClient, router: NotificationRouter) -> None:
        self._http = http_client
        self._router = router

    async def execute(self, task: Task, now: datetime | None = None) -> ExecutionResult:
        """Dispatch on task type."""
        match task.task_type:
            case TaskType.KEEPALIVE:
                return await self.execute_keepalive(task)
            case TaskType.NOTIFICATION:
                return await self.execute_notification(task, now)

    async def execute_keepalive(self, task: Task) -> ExecutionResult:
        """Issue the task's HTTP request; 2xx-3xx is success."""
        config = task.config
        if not isinstance(config, KeepaliveConfig):
            msg = f"Task {task.id} is not a keepalive task"
            raise TypeError(msg)

        logger.info("Keepalive '%s' (%s): %s %s", task.name, task.id, config.method, config.url)
        started = time.monotonic()
        try:
            resp = await self._http.request(
                config.url, config.method, config.headers, config.body, config.timeout_ms
            )
        except ExecutionTimeoutError:
            return ExecutionResult.failure(
                "timeout",
                elapsed_ms=_elapsed_ms(started),
                details={"url": config.url, "method": config.method, "timeout_ms": config.timeout_ms},
            )
        except NetworkError as exc:
            return ExecutionResult.failure(
                f"network_error:{exc}",
                elapsed_ms=_elapsed_ms(started),
                details={"url": config.url, "method": config.method},
            )

        details = {"url": config.url, "method": config.method}
        try:
            raise_for_status(resp)
        except HttpStatusError as exc:
            logger.warning(
                "Keepalive '%s' (%s) returned HTTP %d", task.name, task.id, exc.status_code
            )
            return ExecutionResult.failure(
                str(exc),
                elapsed_ms=resp.elapsed_ms,
                status_code=exc.status_code,
                details=details,
            )
        return ExecutionResult(
            success=True,
            elapsed_ms=resp.elapsed_ms,
            status_code=resp.status_code,
            details=details,
        )

    async def execute_notification(
        self, task: Task, now: datetime | None = None
    ) -> ExecutionResult:
        """Format the reminder and send it through every configured channel.

        Any failing channel fails the whole execution; each channel's outcome
        is kept in ``details["channels"]``.
        """
        config = task.config
        if not isinstance(config, NotificationConfig):
            msg = f"Task {task.id} is not a notification task"
            raise TypeError(msg)

        now = now or datetime.now(UTC)
        title = render(config.title, task, now) or task.name
        message = render(config.message, task, now)
        logger.info(
            "Notification '%s' (%s) via %s", task.name, task.id, ", ".join(config.channels)
        )
        started = time.monotonic()
        report = await self._router.dispatch(title, message, config.channels)
        elapsed = _elapsed_ms(started)
        details = {"title": title, "channels": report.as_details()}

        if report.success:
            return ExecutionResult(
                success=True, elapsed_ms=elapsed, status_code=200, details=details
            )
        return ExecutionResult.failure(
            (report.error_summary() or "delivery failed")[:MAX_ERROR_MESSAGE_LENGTH],
            elapsed_ms=elapsed,
            status_code=500,
            details=details,
        )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
