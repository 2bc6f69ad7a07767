"""Exception taxonomy for task execution and request admission."""

from __future__ import annotations

MAX_REASON_LENGTH = 200


class StmsError(Exception):
    """Base class for all STMS errors."""


class ValidationError(StmsError):
    """Malformed task or execution log fields.

    Attributes:
        errors: Every violation found, not just the first one.
    """

    def __init__(self, errors: list[str] | str) -> None:
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class DuplicateLogError(StmsError):
    """An execution log with the same id was already recorded."""

    def __init__(self, log_id: str) -> None:
        self.log_id = log_id
        super().__init__(f"Execution log already exists: {log_id}")


class ExecutionTimeoutError(StmsError):
    """An outbound call exceeded its time bound."""


class HttpStatusError(StmsError):
    """A response came back outside the 2xx-3xx range."""

    def __init__(self, status_code: int) -> None:
        self.status_code = status_code
        super().__init__(f"http_status:{status_code}")


class NetworkError(StmsError):
    """Connection-level failure (DNS, refused, reset, TLS...)."""


class ChannelDeliveryError(StmsError):
    """A notification channel failed to deliver a message.

    ``reason`` is cut to MAX_REASON_LENGTH chars; it often embeds user input.
    """

    def __init__(self, channel: str, reason: str) -> None:
        self.channel = channel
        self.reason = reason[:MAX_REASON_LENGTH]
        super().__init__(f"{channel}: {self.reason}")


class RateLimitExceeded(StmsError):
    """Admission denied: too many requests for one client in the window."""

    def __init__(self, client_key: str, retry_after: float) -> None:
        self.client_key = client_key
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded for {client_key}; retry in {retry_after:.0f}s")
