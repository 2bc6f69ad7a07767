"""ExecutionLogRecorder — validates and persists execution outcomes."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from stms.errors import ValidationError
from stms.scheduler.models import ExecutionLog, TaskStatus, make_id

if TYPE_CHECKING:
    from stms.scheduler.log_store import LogStore
    from stms.scheduler.models import ExecutionResult

logger = logging.getLogger(__name__)

MAX_RESPONSE_TIME_MS = 300_000
MAX_ERROR_MESSAGE_LENGTH = 1000
MAX_DETAILS_LENGTH = 10_000


def validate_log(log: ExecutionLog) -> list[str]:
    """Return every bound the log violates (empty list when valid)."""
    errors: list[str] = []
    if not log.task_id or not log.task_id.strip():
        errors.append("task_id must not be empty")
    if log.status not in (TaskStatus.SUCCESS, TaskStatus.FAILURE):
        errors.append("status must be 'success' or 'failure'")
    if log.response_time is not None and not 0 <= log.response_time <= MAX_RESPONSE_TIME_MS:
        errors.append(f"response_time must be between 0 and {MAX_RESPONSE_TIME_MS} ms")
    if log.status_code is not None and not 100 <= log.status_code <= 599:
        errors.append("status_code must be between 100 and 599")
    if log.error_message is not None and len(log.error_message) > MAX_ERROR_MESSAGE_LENGTH:
        errors.append(f"error_message must not exceed {MAX_ERROR_MESSAGE_LENGTH} chars")
    if log.details is not None:
        try:
            json.loads(log.details)
        except ValueError:
            errors.append("details must be valid JSON")
        if len(log.details) > MAX_DETAILS_LENGTH:
            errors.append(f"details must not exceed {MAX_DETAILS_LENGTH} chars")
    return errors


def _encode_details(details: dict[str, Any]) -> str | None:
    if not details:
        return None
    try:
        return json.dumps(details, default=str, ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        msg = f"details are not serializable: {exc}"
        raise ValidationError(msg) from exc


class ExecutionLogRecorder:
    """Turns an ExecutionResult into a stored ExecutionLog.

    Args:
        store: Append-only log store.
    """

    def __init__(self, store: LogStore) -> None:
        self._store = store

    def build(
        self, result: ExecutionResult, task_id: str, log_id: str | None = None
    ) -> ExecutionLog:
        """Build and validate a log without storing it.

        Raises:
            ValidationError: With every violated bound; nothing is truncated.
        """
        log = ExecutionLog(
            id=log_id or make_id(),
            task_id=task_id,
            execution_time=result.executed_at.isoformat(),
            status=result.status,
            response_time=result.elapsed_ms,
            status_code=result.status_code,
            error_message=result.error,
            details=_encode_details(result.details),
        )
        errors = validate_log(log)
        if errors:
            raise ValidationError(errors)
        return log

    async def record(
        self, result: ExecutionResult, task_id: str, log_id: str | None = None
    ) -> ExecutionLog:
        """Validate and append a log for *result*.

        Raises:
            ValidationError: If a field is out of bounds.
            DuplicateLogError: If *log_id* was already recorded.
        """
        log = self.build(result, task_id, log_id)
        await self._store.insert(log)
        logger.debug("Recorded %s log %s for task %s", log.status, log.id, task_id)
        return log
