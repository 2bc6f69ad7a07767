"""Email implementation of the NotificationChannel protocol (Resend HTTP API)."""

from __future__ import annotations

import html
import logging
import re
from typing import Any

import httpx

from stms.errors import ChannelDeliveryError
from stms.notifications.channels import post_json

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class EmailChannel:
    """Sends notifications as email through Resend.

    Config keys: ``to`` (required). ``api_key``, ``from`` and ``from_name``
    fall back to the channel defaults.
    """

    def __init__(
        self,
        api_key: str = "",
        sender: str = "",
        sender_name: str = "STMS",
        timeout_ms: int = 30000,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._sender = sender
        self._sender_name = sender_name
        self._timeout_ms = timeout_ms
        self._transport = transport

    @property
    def name(self) -> str:
        return "email"

    async def send(self, title: str, message: str, config: dict[str, Any]) -> None:
        to = config.get("to", "")
        if not _EMAIL_RE.match(to):
            raise ChannelDeliveryError(self.name, f"invalid recipient: {to!r}")
        api_key = config.get("api_key") or self._api_key
        sender = config.get("from") or self._sender
        if not api_key or not sender:
            raise ChannelDeliveryError(self.name, "email channel is not configured")

        sender_name = config.get("from_name") or self._sender_name
        body = "<br>".join(html.escape(line) for line in message.splitlines())
        payload = {
            "from": f"{sender_name} <{sender}>",
            "to": [to],
            "subject": title,
            "html": f"<h2>{html.escape(title)}</h2><p>{body}</p>",
            "text": message,
        }
        await post_json(
            self.name,
            RESEND_URL,
            payload,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout_ms=self._timeout_ms,
            transport=self._transport,
        )
        logger.info("Email sent to %s (%s)", to, title)
