"""Tests for task, config, and execution models."""

from datetime import UTC, datetime

import pytest

from helpers import make_keepalive, make_notification, make_rule
from stms.errors import ValidationError
from stms.scheduler.models import (
    ExecutionLog,
    ExecutionResult,
    KeepaliveConfig,
    NotificationConfig,
    Task,
    TaskStatus,
    TaskType,
    config_from_dict,
    make_id,
)

# -- KeepaliveConfig -----------------------------------------------------------


def test_keepalive_defaults() -> None:
    config = KeepaliveConfig(url="https://example.com")
    assert config.method == "GET"
    assert config.timeout_ms == 30000
    assert config.headers == {}


def test_keepalive_method_is_uppercased() -> None:
    assert KeepaliveConfig(url="https://example.com", method="post").method == "POST"


def test_keepalive_collects_every_violation() -> None:
    with pytest.raises(ValidationError) as exc_info:
        KeepaliveConfig(url="ftp://example.com", method="FETCH", timeout_ms=0)
    assert len(exc_info.value.errors) == 3


def test_keepalive_timeout_upper_bound() -> None:
    with pytest.raises(ValidationError):
        KeepaliveConfig(url="https://example.com", timeout_ms=300_001)


# -- NotificationConfig --------------------------------------------------------


def test_notification_requires_message_and_channel() -> None:
    with pytest.raises(ValidationError) as exc_info:
        NotificationConfig(title="t", message="  ", channels={})
    assert "message must not be empty" in exc_info.value.errors
    assert "at least one channel must be configured" in exc_info.value.errors


def test_notification_rejects_bad_hours() -> None:
    with pytest.raises(ValidationError):
        NotificationConfig(title="t", message="m", channels={"fake": {}}, allowed_hours=[9, 24])


def test_config_from_dict_dispatches_on_type() -> None:
    ka = config_from_dict("keepalive", {"url": "https://example.com"})
    assert isinstance(ka, KeepaliveConfig)
    nt = config_from_dict(TaskType.NOTIFICATION, {"message": "m", "channels": {"fake": {}}})
    assert isinstance(nt, NotificationConfig)


# -- Task ----------------------------------------------------------------------


def test_task_coerces_enums() -> None:
    task = make_keepalive(last_status="failure")
    assert task.task_type is TaskType.KEEPALIVE
    assert task.last_status is TaskStatus.FAILURE


def test_task_rejects_mismatched_config() -> None:
    with pytest.raises(ValidationError):
        Task(
            id="t1",
            name="bad",
            task_type=TaskType.NOTIFICATION,
            config=KeepaliveConfig(url="https://example.com"),
        )


def test_task_defaults_timestamps() -> None:
    task = Task(
        id="t1",
        name="n",
        task_type="keepalive",
        config=KeepaliveConfig(url="https://example.com"),
    )
    assert task.created_at
    assert task.updated_at == task.created_at


def test_rule_property() -> None:
    rule = make_rule(datetime(2024, 1, 1))
    assert make_notification(rule=rule).rule == rule
    assert make_keepalive().rule is None


def test_task_row_round_trip() -> None:
    rule = make_rule(datetime(2024, 1, 31, tzinfo=UTC), auto_renew=True)
    task = make_notification(
        rule=rule,
        channels={"webhook": {"url": "https://hooks.example.com/x"}},
        allowed_hours=[8, 9, 10],
        last_executed="2024-01-31T00:00:00+00:00",
        last_status="success",
    )
    restored = Task.from_row(task.to_row())
    assert restored == task


# -- Execution -----------------------------------------------------------------


def test_result_status() -> None:
    assert ExecutionResult(success=True).status is TaskStatus.SUCCESS
    assert ExecutionResult.failure("timeout").status is TaskStatus.FAILURE


def test_failure_constructor_keeps_extra_fields() -> None:
    result = ExecutionResult.failure("http_status:404", status_code=404, elapsed_ms=12)
    assert not result.success
    assert result.error == "http_status:404"
    assert result.status_code == 404
    assert result.elapsed_ms == 12


def test_log_row_round_trip() -> None:
    log = ExecutionLog(
        id="log1",
        task_id="t1",
        execution_time="2024-01-01T00:00:00+00:00",
        status=TaskStatus.SUCCESS,
        response_time=40,
        status_code=200,
        details='{"url": "https://example.com"}',
    )
    assert ExecutionLog.from_row(log.to_row()) == log


def test_make_id_is_unique() -> None:
    assert make_id() != make_id()
    assert len(make_id()) == 32
