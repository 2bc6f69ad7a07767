"""Task, task configuration, recurrence rule, and execution result models."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Literal

from stms.errors import ValidationError

HTTP_METHODS = frozenset({"GET", "POST", "PUT", "DELETE", "HEAD", "PATCH"})
RULE_UNITS = frozenset({"day", "month", "year"})
ADVANCE_UNITS = frozenset({"day", "hour"})
MAX_TIMEOUT_MS = 300_000
MAX_REMINDER_ADVANCE = {"day": 366, "hour": 366 * 24}


class TaskType(StrEnum):
    KEEPALIVE = "keepalive"
    NOTIFICATION = "notification"


class TaskStatus(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"


def _parse_dt(value: str | datetime | None) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _format_dt(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


# -- Recurrence ----------------------------------------------------------------


@dataclass(frozen=True)
class RecurrenceRule:
    """Calendar-interval definition for reminder tasks.

    Attributes:
        unit: ``"day"``, ``"month"`` or ``"year"``.
        interval: Number of units between occurrences (>= 1).
        start_date: First occurrence; later occurrences are anchored to it.
        end_date: Last instant an occurrence may fall on (None = open-ended).
        reminder_advance_value: How far ahead of the due date to fire.
        reminder_advance_unit: ``"day"`` or ``"hour"``.
        auto_renew: Schedule the next occurrence after firing instead of
            retiring the rule.
        next_due: The pending occurrence (None until first computed).
        exhausted: No further occurrences will be scheduled.
    """

    unit: str
    interval: int
    start_date: datetime
    end_date: datetime | None = None
    reminder_advance_value: int | None = None
    reminder_advance_unit: str | None = None
    auto_renew: bool = False
    next_due: datetime | None = None
    exhausted: bool = False
    kind: Literal["interval"] = "interval"

    def __post_init__(self) -> None:
        errors: list[str] = []
        if self.kind != "interval":
            errors.append(f"unsupported rule kind: {self.kind}")
        if self.unit not in RULE_UNITS:
            errors.append(f"unit must be one of {sorted(RULE_UNITS)}, got {self.unit!r}")
        if not isinstance(self.interval, int) or self.interval < 1:
            errors.append("interval must be an integer >= 1")
        if self.reminder_advance_value is not None:
            if self.reminder_advance_value < 0:
                errors.append("reminder_advance_value must be >= 0")
            if self.reminder_advance_unit not in ADVANCE_UNITS:
                errors.append(
                    f"reminder_advance_unit must be one of {sorted(ADVANCE_UNITS)}"
                )
            elif self.reminder_advance_value > MAX_REMINDER_ADVANCE[self.reminder_advance_unit]:
                limit = MAX_REMINDER_ADVANCE[self.reminder_advance_unit]
                errors.append(
                    f"reminder_advance_value must be <= {limit} {self.reminder_advance_unit}s"
                )
        if self.next_due is not None and self.next_due < self.start_date:
            errors.append("next_due must not precede start_date")
        if errors:
            raise ValidationError(errors)

    @property
    def has_advance(self) -> bool:
        return bool(self.reminder_advance_value) and self.reminder_advance_unit is not None

    def with_next_due(self, next_due: datetime | None) -> RecurrenceRule:
        """Return a copy pointing at *next_due*, or an exhausted copy for None."""
        if next_due is None:
            return replace(self, next_due=None, exhausted=True)
        return replace(self, next_due=next_due, exhausted=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "unit": self.unit,
            "interval": self.interval,
            "start_date": _format_dt(self.start_date),
            "end_date": _format_dt(self.end_date),
            "reminder_advance_value": self.reminder_advance_value,
            "reminder_advance_unit": self.reminder_advance_unit,
            "auto_renew": self.auto_renew,
            "next_due": _format_dt(self.next_due),
            "exhausted": self.exhausted,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RecurrenceRule:
        return cls(
            kind=data.get("kind", "interval"),
            unit=data["unit"],
            interval=int(data["interval"]),
            start_date=_parse_dt(data["start_date"]),
            end_date=_parse_dt(data.get("end_date")),
            reminder_advance_value=data.get("reminder_advance_value"),
            reminder_advance_unit=data.get("reminder_advance_unit"),
            auto_renew=bool(data.get("auto_renew", False)),
            next_due=_parse_dt(data.get("next_due")),
            exhausted=bool(data.get("exhausted", False)),
        )


# -- Task configuration variants -----------------------------------------------


@dataclass
class KeepaliveConfig:
    """Outbound HTTP check."""

    url: str
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    body: str | None = None
    timeout_ms: int = 30000
    kind: Literal["keepalive"] = "keepalive"

    def __post_init__(self) -> None:
        self.method = self.method.upper()
        errors: list[str] = []
        if not self.url or not self.url.startswith(("http://", "https://")):
            errors.append(f"url must be an http(s) URL, got {self.url!r}")
        if self.method not in HTTP_METHODS:
            errors.append(f"method must be one of {sorted(HTTP_METHODS)}")
        if not 1 <= self.timeout_ms <= MAX_TIMEOUT_MS:
            errors.append(f"timeout_ms must be between 1 and {MAX_TIMEOUT_MS}")
        if errors:
            raise ValidationError(errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "url": self.url,
            "method": self.method,
            "headers": self.headers,
            "body": self.body,
            "timeout_ms": self.timeout_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KeepaliveConfig:
        return cls(
            url=data["url"],
            method=data.get("method", "GET"),
            headers=dict(data.get("headers") or {}),
            body=data.get("body"),
            timeout_ms=int(data.get("timeout_ms", 30000)),
        )


@dataclass
class NotificationConfig:
    """Reminder delivered through one or more notification channels.

    ``channels`` maps a registered channel name to that channel's config,
    e.g. ``{"webhook": {"url": "https://..."}, "email": {"to": "a@b.c"}}``.
    ``allowed_hours`` restricts delivery to those local hours (0-23).
    """

    title: str
    message: str
    channels: dict[str, dict[str, Any]] = field(default_factory=dict)
    rule: RecurrenceRule | None = None
    allowed_hours: list[int] | None = None
    kind: Literal["notification"] = "notification"

    def __post_init__(self) -> None:
        errors: list[str] = []
        if not self.message or not self.message.strip():
            errors.append("message must not be empty")
        if not self.channels:
            errors.append("at least one channel must be configured")
        if self.allowed_hours is not None and any(
            not 0 <= h <= 23 for h in self.allowed_hours
        ):
            errors.append("allowed_hours must be within 0-23")
        if errors:
            raise ValidationError(errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "title": self.title,
            "message": self.message,
            "channels": self.channels,
            "rule": self.rule.to_dict() if self.rule else None,
            "allowed_hours": self.allowed_hours,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NotificationConfig:
        rule = data.get("rule")
        return cls(
            title=data.get("title", ""),
            message=data["message"],
            channels=dict(data.get("channels") or {}),
            rule=RecurrenceRule.from_dict(rule) if rule else None,
            allowed_hours=data.get("allowed_hours"),
        )


TaskConfig = KeepaliveConfig | NotificationConfig


def config_from_dict(task_type: TaskType | str, data: dict[str, Any]) -> TaskConfig:
    """Deserialize the config variant that belongs to *task_type*."""
    match TaskType(task_type):
        case TaskType.KEEPALIVE:
            return KeepaliveConfig.from_dict(data)
        case TaskType.NOTIFICATION:
            return NotificationConfig.from_dict(data)


# -- Task ------------------------------------------------------------------------


@dataclass
class Task:
    """A user-defined recurring task.

    Attributes:
        id: Unique identifier (UUID hex).
        name: Human-readable name.
        task_type: ``keepalive`` or ``notification``.
        config: Variant matching ``task_type``.
        schedule: Five-field crontab; drives keepalive tasks.
        enabled: Whether the task takes part in batches.
        created_by: Owner user ID.
        created_at: ISO 8601 timestamp.
        updated_at: ISO 8601 timestamp.
        last_executed: ISO 8601 timestamp of the last execution.
        last_status: ``success`` / ``failure`` of the last execution.
    """

    id: str
    name: str
    task_type: TaskType
    config: TaskConfig
    schedule: str = ""
    enabled: bool = True
    created_by: str = ""
    created_at: str = ""
    updated_at: str = ""
    last_executed: str | None = None
    last_status: TaskStatus | None = None

    def __post_init__(self) -> None:
        self.task_type = TaskType(self.task_type)
        if self.last_status is not None:
            self.last_status = TaskStatus(self.last_status)
        if self.config.kind != self.task_type.value:
            msg = f"config kind {self.config.kind!r} does not match task type {self.task_type!r}"
            raise ValidationError(msg)
        if not self.created_at:
            self.created_at = datetime.now(UTC).isoformat()
        if not self.updated_at:
            self.updated_at = self.created_at

    @property
    def rule(self) -> RecurrenceRule | None:
        if isinstance(self.config, NotificationConfig):
            return self.config.rule
        return None

    # -- Serialization ---------------------------------------------------------

    def to_row(self) -> tuple:
        """Serialize to a tuple matching the ``tasks`` column order."""
        return (
            self.id,
            self.name,
            self.task_type.value,
            self.schedule,
            json.dumps(self.config.to_dict()),
            int(self.enabled),
            self.created_by,
            self.created_at,
            self.updated_at,
            self.last_executed,
            self.last_status.value if self.last_status else None,
        )

    @classmethod
    def from_row(cls, row: tuple) -> Task:
        """Deserialize from a SQLite row tuple."""
        return cls(
            id=row[0],
            name=row[1],
            task_type=TaskType(row[2]),
            schedule=row[3] or "",
            config=config_from_dict(row[2], json.loads(row[4])),
            enabled=bool(row[5]),
            created_by=row[6] or "",
            created_at=row[7],
            updated_at=row[8],
            last_executed=row[9],
            last_status=row[10],
        )


# -- Execution -------------------------------------------------------------------


@dataclass
class ExecutionResult:
    """Transient outcome of one execution attempt."""

    success: bool
    elapsed_ms: int = 0
    status_code: int | None = None
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    executed_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def status(self) -> TaskStatus:
        return TaskStatus.SUCCESS if self.success else TaskStatus.FAILURE

    @classmethod
    def failure(cls, error: str, **kwargs: Any) -> ExecutionResult:
        return cls(success=False, error=error, **kwargs)


@dataclass(frozen=True)
class ExecutionLog:
    """Durable, append-only record of one execution.

    ``details`` holds JSON text; see ``stms.scheduler.recorder.validate_log``
    for the field bounds enforced before a log is stored.
    """

    id: str
    task_id: str
    execution_time: str
    status: TaskStatus
    response_time: int | None = None
    status_code: int | None = None
    error_message: str | None = None
    details: str | None = None

    def to_row(self) -> tuple:
        """Serialize to a tuple matching the ``execution_logs`` column order."""
        return (
            self.id,
            self.task_id,
            self.execution_time,
            TaskStatus(self.status).value,
            self.response_time,
            self.status_code,
            self.error_message,
            self.details,
        )

    @classmethod
    def from_row(cls, row: tuple) -> ExecutionLog:
        return cls(
            id=row[0],
            task_id=row[1],
            execution_time=row[2],
            status=TaskStatus(row[3]),
            response_time=row[4],
            status_code=row[5],
            error_message=row[6],
            details=row[7],
        )


def make_id() -> str:
    """Generate a new task or log ID."""
    return uuid.uuid4().hex
