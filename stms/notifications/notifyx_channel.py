"""NotifyX push implementation of the NotificationChannel protocol."""

from __future__ import annotations

from typing import Any

import httpx

from stms.errors import ChannelDeliveryError
from stms.notifications.channels import post_json

NOTIFYX_URL = "https://www.notifyx.cn/api/v1/send/{api_key}"
MAX_TITLE_LENGTH = 100
MAX_MESSAGE_LENGTH = 2000


class NotifyXChannel:
    """Sends push notifications via the NotifyX API."""

    def __init__(
        self,
        api_key: str = "",
        timeout_ms: int = 30000,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._timeout_ms = timeout_ms
        self._transport = transport

    @property
    def name(self) -> str:
        return "notifyx"

    async def send(self, title: str, message: str, config: dict[str, Any]) -> None:
        api_key = (config.get("api_key") or self._api_key).strip()
        title = title or "System notification"
        if not api_key:
            raise ChannelDeliveryError(self.name, "api key is not configured")
        if len(title) > MAX_TITLE_LENGTH:
            raise ChannelDeliveryError(self.name, f"title exceeds {MAX_TITLE_LENGTH} chars")
        if len(message) > MAX_MESSAGE_LENGTH:
            raise ChannelDeliveryError(self.name, f"message exceeds {MAX_MESSAGE_LENGTH} chars")

        await post_json(
            self.name,
            NOTIFYX_URL.format(api_key=api_key),
            {"title": title, "content": message},
            timeout_ms=self._timeout_ms,
            transport=self._transport,
        )
