"""ScheduleOrchestrator — runs one batch of due tasks per timer tick."""

from __future__ import annotations

import asyncio
import logging
import zoneinfo
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from stms.config import settings
from stms.errors import ValidationError
from stms.scheduler import cron, recurrence
from stms.scheduler.models import (
    ExecutionResult,
    NotificationConfig,
    RecurrenceRule,
    Task,
    TaskType,
)
from stms.scheduler.recorder import MAX_RESPONSE_TIME_MS

if TYPE_CHECKING:
    from stms.scheduler.alerts import AlertService
    from stms.scheduler.executor import TaskExecutor
    from stms.scheduler.recorder import ExecutionLogRecorder
    from stms.scheduler.store import TaskStore

logger = logging.getLogger(__name__)

_MAX_ERROR_LENGTH = 1000


@dataclass
class BatchReport:
    """Aggregate result of one tick.

    ``success`` is False only when the batch itself could not run; failing
    tasks are listed in ``errors`` without affecting it.
    """

    success: bool
    processed: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "processed": self.processed, "errors": self.errors}


@dataclass
class TaskOutcome:
    task_id: str
    result: ExecutionResult
    errors: list[str] = field(default_factory=list)


class ScheduleOrchestrator:
    """Evaluates every enabled task against the current time and runs the due ones.

    Args:
        store: TaskStore to load tasks from and persist execution state to.
        executor: TaskExecutor performing the outbound calls.
        recorder: ExecutionLogRecorder for the per-execution logs.
        alerts: Optional AlertService for keepalive failure/recovery alerts.
        max_concurrency: Simultaneous executions per batch (default from settings).
        task_timeout: Seconds one execution may take in total (default from settings).
        timezone: IANA timezone for crontab and reminder evaluation.
    """

    def __init__(
        self,
        store: TaskStore,
        executor: TaskExecutor,
        recorder: ExecutionLogRecorder,
        alerts: AlertService | None = None,
        max_concurrency: int | None = None,
        task_timeout: float | None = None,
        timezone: str | None = None,
    ) -> None:
        self._store = store
        self._executor = executor
        self._recorder = recorder
        self._alerts = alerts
        self._max_concurrency = max_concurrency or settings.max_concurrent_executions
        self._task_timeout = task_timeout or settings.task_timeout_seconds
        self._tz = zoneinfo.ZoneInfo(timezone or settings.scheduler_timezone)

    # -- Entry point -----------------------------------------------------------

    async def run_batch(self, now: datetime | None = None) -> BatchReport:
        """Run every due task once. Never raises."""
        now = self._normalise(now)
        try:
            loaded = await self._store.load_enabled()
        except Exception as exc:
            logger.exception("Batch aborted: could not load enabled tasks")
            return BatchReport(success=False, errors=[f"failed to load tasks: {exc}"])

        tasks = loaded.tasks
        errors = [
            f"Task {task_id} could not be loaded: {reason}"
            for task_id, reason in loaded.invalid.items()
        ]
        due: list[Task] = []
        for task in tasks:
            try:
                if self.is_due(task, now):
                    due.append(task)
            except ValidationError as exc:
                logger.warning("Task '%s' (%s) has an invalid schedule: %s", task.name, task.id, exc)
                errors.append(f"Task '{task.name}' ({task.id}) has an invalid schedule: {exc}")
            except Exception as exc:
                logger.exception("Could not evaluate schedule of task '%s' (%s)", task.name, task.id)
                errors.append(f"Task '{task.name}' ({task.id}) could not be evaluated: {exc}")

        logger.info("Tick %s: %d enabled task(s), %d due", now.isoformat(), len(tasks), len(due))
        if not due:
            return BatchReport(success=True, processed=0, errors=errors)

        semaphore = asyncio.Semaphore(self._max_concurrency)
        outcomes = await asyncio.gather(*(self._run_guarded(semaphore, task, now) for task in due))
        for outcome in outcomes:
            errors.extend(outcome.errors)

        report = BatchReport(success=True, processed=len(outcomes), errors=errors)
        logger.info(
            "Batch finished: %d processed, %d error(s)", report.processed, len(report.errors)
        )
        return report

    # -- Due-ness --------------------------------------------------------------

    def is_due(self, task: Task, now: datetime) -> bool:
        """Decide whether *task* runs on the tick at *now*.

        Raises:
            ValidationError: If the task's crontab is malformed.
        """
        match task.task_type:
            case TaskType.KEEPALIVE:
                return cron.matches(task.schedule, now, self._tz)
            case TaskType.NOTIFICATION:
                return self._notification_due(task, now)

    def _notification_due(self, task: Task, now: datetime) -> bool:
        config = task.config
        if not isinstance(config, NotificationConfig):
            return False
        if config.rule is not None:
            due = recurrence.is_due(self._rule(task), now)
        elif task.schedule:
            due = cron.matches(task.schedule, now, self._tz)
        else:
            return False
        if due and config.allowed_hours and now.hour not in config.allowed_hours:
            logger.debug("Task '%s' is due but %02d:00 is outside its allowed hours", task.name, now.hour)
            return False
        return due

    def _rule(self, task: Task) -> RecurrenceRule:
        return recurrence.localize(task.rule, self._tz)

    # -- Execution -------------------------------------------------------------

    async def _run_guarded(
        self, semaphore: asyncio.Semaphore, task: Task, now: datetime
    ) -> TaskOutcome:
        async with semaphore:
            try:
                return await self._run_task(task, now)
            except Exception as exc:
                logger.exception("Unhandled error processing task '%s' (%s)", task.name, task.id)
                error = f"unexpected_error:{exc}"[:_MAX_ERROR_LENGTH]
                outcome = TaskOutcome(
                    task_id=task.id,
                    result=ExecutionResult.failure(error),
                    errors=[_task_error(task, error)],
                )
                await self._persist(task, outcome)
                return outcome

    async def _run_task(self, task: Task, now: datetime) -> TaskOutcome:
        result = await self._execute(task, now)
        outcome = TaskOutcome(task_id=task.id, result=result)
        if not result.success:
            outcome.errors.append(_task_error(task, result.error or "failed"))

        # Rules only move on after a delivered reminder; failures retry next tick.
        rule = None
        if result.success and task.rule is not None:
            try:
                rule = recurrence.advance(self._rule(task), now)
            except Exception as exc:
                logger.exception("Could not advance rule of task '%s' (%s)", task.name, task.id)
                outcome.errors.append(_task_error(task, f"rule_error:{exc}"))
            else:
                logger.info(
                    "Task '%s' rule advanced: next_due=%s exhausted=%s",
                    task.name,
                    rule.next_due.isoformat() if rule.next_due else None,
                    rule.exhausted,
                )

        await self._persist(task, outcome, rule)

        if self._alerts is not None and task.task_type is TaskType.KEEPALIVE:
            await self._alerts.after_execution(task, result)

        return outcome

    async def _persist(
        self, task: Task, outcome: TaskOutcome, rule: RecurrenceRule | None = None
    ) -> None:
        """Write the execution log and task state; failures go to ``outcome.errors``."""
        result = outcome.result
        try:
            await self._recorder.record(result, task.id)
        except Exception as exc:
            logger.exception("Could not record execution log for task %s", task.id)
            outcome.errors.append(_task_error(task, f"log_error:{exc}"))

        try:
            await self._store.update_execution_state(
                task.id, result.executed_at.isoformat(), result.status, rule
            )
        except Exception as exc:
            logger.exception("Could not persist execution state for task %s", task.id)
            outcome.errors.append(_task_error(task, f"state_error:{exc}"))

    async def _execute(self, task: Task, now: datetime) -> ExecutionResult:
        try:
            async with asyncio.timeout(self._task_timeout):
                return await self._executor.execute(task, now)
        except TimeoutError:
            logger.warning("Task '%s' (%s) exceeded %.0fs", task.name, task.id, self._task_timeout)
            return ExecutionResult.failure(
                "timeout", elapsed_ms=min(int(self._task_timeout * 1000), MAX_RESPONSE_TIME_MS)
            )
        except Exception as exc:
            logger.exception("Task '%s' (%s) raised during execution", task.name, task.id)
            return ExecutionResult.failure(f"unexpected_error:{exc}"[:_MAX_ERROR_LENGTH])

    def _normalise(self, now: datetime | None) -> datetime:
        if now is None:
            return datetime.now(self._tz)
        if now.tzinfo is None:
            return now.replace(tzinfo=self._tz)
        return now.astimezone(self._tz)


def _task_error(task: Task, message: str) -> str:
    return f"Task '{task.name}' ({task.id}) failed: {message}"
