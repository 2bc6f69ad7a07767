"""NotificationChannel protocol — interface for all notification delivery channels."""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

import httpx

from stms.errors import ChannelDeliveryError

logger = logging.getLogger(__name__)


@runtime_checkable
class NotificationChannel(Protocol):
    """Protocol that all notification channels must satisfy."""

    @property
    def name(self) -> str:
        """Unique channel identifier (e.g. 'webhook', 'email')."""
        ...

    async def send(self, title: str, message: str, config: dict[str, Any]) -> None:
        """Deliver one message. Raises ChannelDeliveryError on failure."""
        ...


async def post_json(
    channel: str,
    url: str,
    payload: dict[str, Any],
    *,
    headers: dict[str, str] | None = None,
    timeout_ms: int,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.Response:
    """POST *payload* as JSON, translating every failure into ChannelDeliveryError."""
    try:
        async with httpx.AsyncClient(timeout=timeout_ms / 1000, transport=transport) as client:
            resp = await client.post(url, json=payload, headers=headers or {})
    except httpx.TimeoutException as exc:
        raise ChannelDeliveryError(channel, "timeout") from exc
    except httpx.HTTPError as exc:
        raise ChannelDeliveryError(channel, f"network_error:{exc or type(exc).__name__}") from exc

    if not resp.is_success:
        logger.warning("%s delivery rejected: HTTP %d", channel, resp.status_code)
        raise ChannelDeliveryError(channel, f"http_status:{resp.status_code}")
    return resp
