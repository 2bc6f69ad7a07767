"""NotificationRouter — dispatches one message to the channels a task names."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from stms.errors import MAX_REASON_LENGTH, ChannelDeliveryError

if TYPE_CHECKING:
    from stms.notifications.channels import NotificationChannel

logger = logging.getLogger(__name__)


@dataclass
class DispatchReport:
    """Per-channel outcome of one dispatch.

    ``outcomes`` maps channel name to ``None`` (delivered) or the failure reason.
    """

    outcomes: dict[str, str | None] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return bool(self.outcomes) and all(err is None for err in self.outcomes.values())

    @property
    def failed(self) -> list[str]:
        return [name for name, err in self.outcomes.items() if err is not None]

    def error_summary(self) -> str | None:
        if not self.outcomes:
            return "no notification channel configured"
        if self.success:
            return None
        return ", ".join(f"{name}: {self.outcomes[name]}" for name in self.failed)

    def as_details(self) -> dict[str, Any]:
        return {
            name: {"ok": err is None, "error": err} for name, err in self.outcomes.items()
        }


class NotificationRouter:
    """Routes outbound notifications to registered channels.

    Singleton accessed via ``NotificationRouter.get()``; components receive
    it explicitly so tests can pass their own instance.
    """

    _instance: NotificationRouter | None = None

    def __init__(self) -> None:
        self._channels: dict[str, NotificationChannel] = {}

    @classmethod
    def get(cls) -> NotificationRouter:
        """Return the singleton instance, creating it if needed."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset singleton — for tests only."""
        cls._instance = None

    def register_channel(self, channel: NotificationChannel) -> None:
        """Register a notification channel. Raises ValueError on duplicate name."""
        if channel.name in self._channels:
            msg = f"Channel '{channel.name}' is already registered"
            raise ValueError(msg)
        self._channels[channel.name] = channel

    def get_channel(self, name: str) -> NotificationChannel | None:
        """Look up a channel by name."""
        return self._channels.get(name)

    def list_channels(self) -> list[str]:
        """Return names of all registered channels."""
        return list(self._channels.keys())

    async def _send_one(
        self, name: str, title: str, message: str, config: dict[str, Any]
    ) -> str | None:
        channel = self._channels.get(name)
        if channel is None:
            logger.warning("No channel registered under '%s'", name)
            return "channel not registered"
        try:
            await channel.send(title, message, config)
        except ChannelDeliveryError as exc:
            logger.warning("Delivery via %s failed: %s", name, exc.reason)
            return exc.reason
        except Exception as exc:
            logger.exception("Channel %s raised unexpectedly", name)
            return f"unexpected_error:{exc}"[:MAX_REASON_LENGTH]
        return None

    async def dispatch(
        self,
        title: str,
        message: str,
        channels: dict[str, dict[str, Any]],
    ) -> DispatchReport:
        """Send once through every channel in *channels*, concurrently."""
        names = list(channels)
        results = await asyncio.gather(
            *(self._send_one(name, title, message, channels[name]) for name in names)
        )
        report = DispatchReport(outcomes=dict(zip(names, results, strict=True)))
        if report.failed:
            logger.info(
                "Dispatch '%s': %d/%d channel(s) failed",
                title,
                len(report.failed),
                len(names),
            )
        return report
