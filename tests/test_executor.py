"""Tests for TaskExecutor and the httpx-backed client."""

import asyncio
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import httpx
import pytest

from helpers import FakeChannel, make_keepalive, make_notification, make_rule
from stms.errors import ExecutionTimeoutError, HttpStatusError, NetworkError
from stms.notifications.router import NotificationRouter
from stms.scheduler.executor import TaskExecutor, render
from stms.scheduler.http_client import HttpResponse, HttpxClient, raise_for_status
from stms.scheduler.models import KeepaliveConfig, Task, TaskType

# -- Helpers -------------------------------------------------------------------


def _executor_for(handler, router: NotificationRouter | None = None) -> TaskExecutor:
    client = HttpxClient(transport=httpx.MockTransport(handler))
    return TaskExecutor(http_client=client, router=router or NotificationRouter())


def _status(code: int):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(code)

    return handler


# -- Keepalive -----------------------------------------------------------------


async def test_keepalive_2xx_succeeds() -> None:
    result = await _executor_for(_status(204)).execute(make_keepalive())
    assert result.success
    assert result.status_code == 204
    assert result.error is None
    assert result.details == {"url": "https://example.com/health", "method": "GET"}


async def test_keepalive_3xx_succeeds() -> None:
    result = await _executor_for(_status(302)).execute(make_keepalive())
    assert result.success
    assert result.status_code == 302


async def test_keepalive_404_fails_with_status() -> None:
    result = await _executor_for(_status(404)).execute(make_keepalive())
    assert not result.success
    assert result.status_code == 404
    assert result.error == "http_status:404"


async def test_keepalive_timeout() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    result = await _executor_for(handler).execute(make_keepalive())
    assert not result.success
    assert result.error == "timeout"
    assert result.status_code is None


async def test_keepalive_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    result = await _executor_for(handler).execute(make_keepalive())
    assert not result.success
    assert result.error.startswith("network_error:")
    assert "connection refused" in result.error


async def test_keepalive_sends_method_headers_and_body() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    task = Task(
        id="ka2",
        name="Post",
        task_type=TaskType.KEEPALIVE,
        config=KeepaliveConfig(
            url="https://example.com/ping",
            method="POST",
            headers={"X-Token": "abc"},
            body='{"ping": true}',
        ),
        schedule="* * * * *",
    )
    await _executor_for(handler).execute(task)

    request = seen[0]
    assert request.method == "POST"
    assert request.headers["X-Token"] == "abc"
    assert request.headers["User-Agent"] == "STMS-Keepalive/1.0"
    assert request.content == b'{"ping": true}'


async def test_delete_request_sends_body() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    task = Task(
        id="ka3",
        name="Delete",
        task_type=TaskType.KEEPALIVE,
        config=KeepaliveConfig(url="https://example.com/session", method="DELETE", body='{"id": 7}'),
        schedule="* * * * *",
    )
    await _executor_for(handler).execute(task)
    assert seen[0].method == "DELETE"
    assert seen[0].content == b'{"id": 7}'


async def test_request_without_body_sends_nothing() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    await _executor_for(handler).execute(make_keepalive())
    assert seen[0].content == b""


async def test_slow_response_hits_overall_deadline() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(1)
        return httpx.Response(200)

    task = Task(
        id="ka4",
        name="Slow",
        task_type=TaskType.KEEPALIVE,
        config=KeepaliveConfig(url="https://example.com/slow", timeout_ms=50),
        schedule="* * * * *",
    )
    result = await _executor_for(handler).execute(task)
    assert not result.success
    assert result.error == "timeout"
    assert result.elapsed_ms < 1000


async def test_executor_uses_injected_client() -> None:
    client = AsyncMock()
    client.request.side_effect = ExecutionTimeoutError("timeout")
    executor = TaskExecutor(http_client=client, router=NotificationRouter())

    result = await executor.execute(make_keepalive())
    assert result.error == "timeout"
    client.request.assert_awaited_once_with(
        "https://example.com/health", "GET", {}, None, 30000
    )


async def test_executor_with_fake_response() -> None:
    client = AsyncMock()
    client.request.return_value = HttpResponse(status_code=503, elapsed_ms=17)
    executor = TaskExecutor(http_client=client, router=NotificationRouter())

    result = await executor.execute(make_keepalive())
    assert result.error == "http_status:503"
    assert result.elapsed_ms == 17


async def test_network_error_from_client() -> None:
    client = AsyncMock()
    client.request.side_effect = NetworkError("dns failure")
    executor = TaskExecutor(http_client=client, router=NotificationRouter())

    result = await executor.execute(make_keepalive())
    assert result.error == "network_error:dns failure"


async def test_keepalive_rejects_notification_task() -> None:
    executor = TaskExecutor(http_client=AsyncMock(), router=NotificationRouter())
    with pytest.raises(TypeError):
        await executor.execute_keepalive(make_notification())


# -- Notification --------------------------------------------------------------


async def test_notification_success() -> None:
    router = NotificationRouter()
    channel = FakeChannel("fake")
    router.register_channel(channel)
    executor = TaskExecutor(http_client=AsyncMock(), router=router)

    task = make_notification(rule=make_rule(datetime(2024, 5, 10)))
    result = await executor.execute(task, datetime(2024, 5, 8, tzinfo=UTC))

    assert result.success
    assert result.status_code == 200
    assert channel.sent == [("Reminder: Renew domain", "Due on 2024-05-10", {})]
    assert result.details["channels"] == {"fake": {"ok": True, "error": None}}


async def test_notification_partial_failure_fails_execution() -> None:
    router = NotificationRouter()
    good = FakeChannel("webhook")
    bad = FakeChannel("email", fail_with="http_status:500")
    router.register_channel(good)
    router.register_channel(bad)
    executor = TaskExecutor(http_client=AsyncMock(), router=router)

    task = make_notification(
        channels={"webhook": {"url": "https://hooks.example.com"}, "email": {"to": "a@b.co"}}
    )
    result = await executor.execute(task)

    assert not result.success
    assert result.status_code == 500
    assert result.error == "email: http_status:500"
    assert result.details["channels"]["webhook"] == {"ok": True, "error": None}
    assert result.details["channels"]["email"] == {"ok": False, "error": "http_status:500"}
    assert len(good.sent) == 1


async def test_notification_unregistered_channel() -> None:
    executor = TaskExecutor(http_client=AsyncMock(), router=NotificationRouter())
    result = await executor.execute(make_notification(channels={"pager": {}}))
    assert not result.success
    assert result.error == "pager: channel not registered"


async def test_empty_title_falls_back_to_task_name() -> None:
    router = NotificationRouter()
    channel = FakeChannel("fake")
    router.register_channel(channel)
    executor = TaskExecutor(http_client=AsyncMock(), router=router)

    await executor.execute(make_notification(title=""))
    assert channel.sent[0][0] == "Renew domain"


# -- render --------------------------------------------------------------------


def test_render_fills_placeholders() -> None:
    task = make_notification(rule=make_rule(datetime(2024, 5, 10)))
    now = datetime(2024, 5, 8, 9, 30)
    out = render("{task_name} due {due_date} (sent {now})", task, now)
    assert out == "Renew domain due 2024-05-10 (sent 2024-05-08 09:30)"


def test_render_keeps_unknown_placeholders() -> None:
    out = render("Hello {someone}, {task_name}", make_notification(), datetime(2024, 1, 1))
    assert out == "Hello {someone}, Renew domain"


def test_render_tolerates_stray_braces() -> None:
    template = "Usage: {task_name"
    assert render(template, make_notification(), datetime(2024, 1, 1)) == template


def test_render_without_rule_has_empty_due_date() -> None:
    assert render("[{due_date}]", make_notification(), datetime(2024, 1, 1)) == "[]"


# -- raise_for_status ----------------------------------------------------------


@pytest.mark.parametrize("code", [200, 204, 301, 399])
def test_raise_for_status_accepts_2xx_3xx(code: int) -> None:
    raise_for_status(HttpResponse(status_code=code, elapsed_ms=1))


@pytest.mark.parametrize("code", [100, 400, 404, 500])
def test_raise_for_status_rejects_others(code: int) -> None:
    with pytest.raises(HttpStatusError) as exc_info:
        raise_for_status(HttpResponse(status_code=code, elapsed_ms=1))
    assert str(exc_info.value) == f"http_status:{code}"
