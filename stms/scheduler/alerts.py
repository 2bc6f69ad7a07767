"""Failure and recovery alerts for keepalive tasks."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from stms.scheduler.models import TaskStatus

if TYPE_CHECKING:
    from stms.notifications.router import NotificationRouter
    from stms.scheduler.log_store import LogStore
    from stms.scheduler.models import ExecutionLog, ExecutionResult, Task

logger = logging.getLogger(__name__)

_HISTORY_LIMIT = 100


def count_consecutive_failures(logs: list[ExecutionLog]) -> int:
    """Count failures from the newest log back to the first success."""
    count = 0
    for log in logs:
        if log.status != TaskStatus.FAILURE:
            break
        count += 1
    return count


def _follows_failure(logs: list[ExecutionLog]) -> bool:
    """True when the newest log is a success and the one before it a failure."""
    return (
        len(logs) >= 2
        and logs[0].status == TaskStatus.SUCCESS
        and logs[1].status == TaskStatus.FAILURE
    )


class AlertService:
    """Notifies the operator when a keepalive task starts failing or recovers.

    A failure alert goes out once, when the streak of consecutive failures
    reaches *threshold*. A recovery alert goes out on a success that directly
    follows a failure.

    Args:
        router: NotificationRouter used for delivery.
        log_store: Source of the task's recent execution history.
        threshold: Consecutive failures before alerting.
        channels: Channel name -> channel config; no channels disables alerts.
    """

    def __init__(
        self,
        router: NotificationRouter,
        log_store: LogStore,
        threshold: int,
        channels: dict[str, dict[str, Any]],
    ) -> None:
        self._router = router
        self._log_store = log_store
        self._threshold = threshold
        self._channels = channels

    @property
    def enabled(self) -> bool:
        return bool(self._channels)

    async def after_execution(self, task: Task, result: ExecutionResult) -> str | None:
        """Send whichever alert the task's history calls for.

        Must run after the result's log was recorded. Returns ``"failure"``,
        ``"recovery"`` or None. Delivery problems are logged, never raised.
        """
        if not self.enabled:
            return None
        try:
            logs = await self._log_store.list_for_task(task.id, limit=_HISTORY_LIMIT)
            if not result.success:
                streak = count_consecutive_failures(logs)
                if streak == self._threshold:
                    await self._send_failure(task, result, streak)
                    return "failure"
            elif _follows_failure(logs):
                await self._send_recovery(task)
                return "recovery"
        except Exception:
            logger.exception("Alert handling failed for task '%s' (%s)", task.name, task.id)
        return None

    async def _send_failure(self, task: Task, result: ExecutionResult, streak: int) -> None:
        title = f"Task failing: {task.name}"
        message = (
            f"Task '{task.name}' ({task.id}) has failed {streak} time(s) in a row.\n"
            f"Type: {task.task_type.value}\n"
            f"Last error: {result.error or 'unknown'}\n"
            f"Time: {result.executed_at.isoformat()}"
        )
        report = await self._router.dispatch(title, message, self._channels)
        logger.info(
            "Failure alert for '%s' (%s): %s",
            task.name,
            task.id,
            "sent" if report.success else report.error_summary(),
        )

    async def _send_recovery(self, task: Task) -> None:
        title = f"Task recovered: {task.name}"
        message = f"Task '{task.name}' ({task.id}) is succeeding again."
        report = await self._router.dispatch(title, message, self._channels)
        logger.info(
            "Recovery alert for '%s' (%s): %s",
            task.name,
            task.id,
            "sent" if report.success else report.error_summary(),
        )
