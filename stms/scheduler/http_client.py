"""Outbound HTTP client used by keepalive checks."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Protocol

import httpx

from stms.errors import ExecutionTimeoutError, HttpStatusError, NetworkError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "STMS-Keepalive/1.0"


@dataclass(frozen=True)
class HttpResponse:
    status_code: int
    elapsed_ms: int


def raise_for_status(resp: HttpResponse) -> None:
    """Raise HttpStatusError unless the status is 2xx or 3xx."""
    if not 200 <= resp.status_code < 400:
        raise HttpStatusError(resp.status_code)


class HttpClient(Protocol):
    """Interface the executor needs from an HTTP client."""

    async def request(
        self,
        url: str,
        method: str,
        headers: dict[str, str],
        body: str | None,
        timeout_ms: int,
    ) -> HttpResponse:
        """Issue one request. Raises ExecutionTimeoutError or NetworkError."""
        ...


class HttpxClient:
    """``HttpClient`` backed by ``httpx.AsyncClient``.

    Args:
        transport: Optional transport override (``httpx.MockTransport`` in tests).
    """

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport

    async def request(
        self,
        url: str,
        method: str,
        headers: dict[str, str],
        body: str | None,
        timeout_ms: int,
    ) -> HttpResponse:
        merged = {"User-Agent": DEFAULT_USER_AGENT, **headers}
        content = body or None
        started = time.monotonic()
        # httpx timeouts are per phase; the outer deadline bounds the whole call
        try:
            async with asyncio.timeout(timeout_ms / 1000), httpx.AsyncClient(
                timeout=timeout_ms / 1000,
                transport=self._transport,
            ) as client:
                resp = await client.request(method, url, headers=merged, content=content)
        except (TimeoutError, httpx.TimeoutException) as exc:
            logger.info("HTTP %s %s timed out after %dms", method, url, timeout_ms)
            raise ExecutionTimeoutError("timeout") from exc
        except httpx.HTTPError as exc:
            cause = (str(exc) or type(exc).__name__)[:500]
            logger.info("HTTP %s %s failed: %s", method, url, cause)
            raise NetworkError(cause) from exc
        elapsed_ms = int((time.monotonic() - started) * 1000)
        return HttpResponse(status_code=resp.status_code, elapsed_ms=elapsed_ms)
