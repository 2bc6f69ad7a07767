"""Webhook implementation of the NotificationChannel protocol."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import httpx

from stms.errors import ChannelDeliveryError
from stms.notifications.channels import post_json

USER_AGENT = "STMS-Notification-Service/1.0"


class WebhookChannel:
    """POSTs a JSON payload to the URL in the channel config.

    Config keys: ``url`` (required), ``headers`` (optional dict),
    ``metadata`` (optional dict merged into the payload).
    """

    def __init__(
        self,
        timeout_ms: int = 30000,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout_ms = timeout_ms
        self._transport = transport

    @property
    def name(self) -> str:
        return "webhook"

    async def send(self, title: str, message: str, config: dict[str, Any]) -> None:
        url = config.get("url", "")
        if not url.startswith(("http://", "https://")):
            raise ChannelDeliveryError(self.name, f"invalid recipient: {url!r}")
        payload = {
            "title": title,
            "message": message,
            **config.get("metadata", {}),
            "timestamp": datetime.now(UTC).isoformat(),
        }
        headers = {"User-Agent": USER_AGENT, **config.get("headers", {})}
        await post_json(
            self.name,
            url,
            payload,
            headers=headers,
            timeout_ms=self._timeout_ms,
            transport=self._transport,
        )
