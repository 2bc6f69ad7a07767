"""Fixed-window request admission control, keyed per client."""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from stms.config import settings
from stms.errors import RateLimitExceeded

logger = logging.getLogger(__name__)


@dataclass
class RateWindow:
    """Request count for one client since ``window_start`` (clock seconds)."""

    window_start: float
    count: int = 0


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_in: float


class RateLimiter:
    """Thread-safe fixed-window rate limiter.

    The first request from a client opens a window of *window_seconds*; every
    request in it increments the count, and requests beyond *max_requests* are
    rejected until the window ends. Increment and check happen under one
    lock, so concurrent handlers cannot push a client past the limit.

    Args:
        max_requests: Requests admitted per window (default from settings).
        window_seconds: Window length (default from settings).
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        max_requests: int | None = None,
        window_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max = max_requests or settings.rate_limit_max_requests
        self._window = window_seconds or settings.rate_limit_window_seconds
        self._clock = clock
        self._windows: dict[str, RateWindow] = {}
        self._lock = threading.Lock()
        self._last_eviction = clock()

    @classmethod
    def strict(cls, **kwargs) -> RateLimiter:
        """10 requests per minute, for sensitive endpoints."""
        return cls(max_requests=10, window_seconds=60, **kwargs)

    @classmethod
    def lenient(cls, **kwargs) -> RateLimiter:
        """120 requests per minute, for read-heavy endpoints."""
        return cls(max_requests=120, window_seconds=60, **kwargs)

    @property
    def limit(self) -> int:
        return self._max

    @property
    def window_seconds(self) -> float:
        return self._window

    def check(self, client_key: str) -> RateDecision:
        """Count one request from *client_key* and decide whether to admit it."""
        now = self._clock()
        with self._lock:
            self._evict_expired(now)
            window = self._windows.get(client_key)
            if window is None or now - window.window_start >= self._window:
                window = RateWindow(window_start=now)
                self._windows[client_key] = window
            window.count += 1
            count = window.count
            reset_in = window.window_start + self._window - now

        allowed = count <= self._max
        if not allowed:
            logger.warning(
                "Rate limit hit for %s: %d requests in %.0fs", client_key, count, self._window
            )
        return RateDecision(
            allowed=allowed,
            limit=self._max,
            remaining=max(self._max - count, 0),
            reset_in=max(reset_in, 0.0),
        )

    def admit(self, client_key: str) -> RateDecision:
        """Like :meth:`check`, but raises RateLimitExceeded on rejection."""
        decision = self.check(client_key)
        if not decision.allowed:
            raise RateLimitExceeded(client_key, decision.reset_in)
        return decision

    def _evict_expired(self, now: float) -> None:
        """Drop finished windows, at most once per window length. Lock must be held."""
        if now - self._last_eviction < self._window:
            return
        expired = [
            key for key, w in self._windows.items() if now - w.window_start >= self._window
        ]
        for key in expired:
            del self._windows[key]
        self._last_eviction = now

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)


def client_key_for(headers: Mapping[str, str], remote: str | None) -> str:
    """Derive the rate-limit key for a request.

    Authenticated requests are keyed by a hash of their Authorization header,
    anonymous ones by client address (proxy headers first).
    """
    auth = headers.get("Authorization")
    if auth:
        return "auth:" + hashlib.sha256(auth.encode()).hexdigest()[:32]
    ip = headers.get("CF-Connecting-IP")
    if not ip:
        forwarded = headers.get("X-Forwarded-For", "")
        ip = forwarded.split(",")[0].strip()
    return f"ip:{ip or remote or 'unknown'}"
