"""Builders and fakes shared across test modules."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from stms.errors import ChannelDeliveryError
from stms.scheduler.models import (
    KeepaliveConfig,
    NotificationConfig,
    RecurrenceRule,
    Task,
    TaskType,
)


def make_keepalive(
    task_id: str = "ka1",
    name: str = "Ping API",
    url: str = "https://example.com/health",
    schedule: str = "* * * * *",
    **kwargs: Any,
) -> Task:
    return Task(
        id=task_id,
        name=name,
        task_type=TaskType.KEEPALIVE,
        config=KeepaliveConfig(url=url),
        schedule=schedule,
        created_at=kwargs.pop("created_at", "2024-01-01T00:00:00+00:00"),
        **kwargs,
    )


def make_rule(start: datetime, **kwargs: Any) -> RecurrenceRule:
    kwargs.setdefault("unit", "month")
    kwargs.setdefault("interval", 1)
    return RecurrenceRule(start_date=start, **kwargs)


def make_notification(
    task_id: str = "n1",
    name: str = "Renew domain",
    rule: RecurrenceRule | None = None,
    channels: dict[str, dict[str, Any]] | None = None,
    allowed_hours: list[int] | None = None,
    schedule: str = "",
    **kwargs: Any,
) -> Task:
    config = NotificationConfig(
        title=kwargs.pop("title", "Reminder: {task_name}"),
        message=kwargs.pop("message", "Due on {due_date}"),
        channels=channels or {"fake": {}},
        rule=rule,
        allowed_hours=allowed_hours,
    )
    return Task(
        id=task_id,
        name=name,
        task_type=TaskType.NOTIFICATION,
        config=config,
        schedule=schedule,
        created_at=kwargs.pop("created_at", "2024-01-01T00:00:00+00:00"),
        **kwargs,
    )


class FakeChannel:
    """Channel that records what it was asked to send."""

    def __init__(self, channel_name: str = "fake", fail_with: str | None = None) -> None:
        self._name = channel_name
        self.fail_with = fail_with
        self.sent: list[tuple[str, str, dict[str, Any]]] = []

    @property
    def name(self) -> str:
        return self._name

    async def send(self, title: str, message: str, config: dict[str, Any]) -> None:
        self.sent.append((title, message, config))
        if self.fail_with is not None:
            raise ChannelDeliveryError(self._name, self.fail_with)
