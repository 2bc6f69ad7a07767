"""HTTP API: admission control, health check, and the batch trigger.

Every ``/api/*`` request passes the rate-limit middleware before it reaches a
handler. Uses aiohttp's AppRunner/TCPSite so the server shares the event loop
with the scheduler.
"""

from __future__ import annotations

import hmac
import logging
import math
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from aiohttp import web

from stms.config import settings
from stms.errors import RateLimitExceeded
from stms.ratelimit import RateDecision, RateLimiter, client_key_for
from stms.scheduler.orchestrator import ScheduleOrchestrator

if TYPE_CHECKING:
    from aiohttp.typedefs import Handler

logger = logging.getLogger(__name__)

RATE_LIMITER = web.AppKey("rate_limiter", RateLimiter)
ORCHESTRATOR = web.AppKey("orchestrator", ScheduleOrchestrator)


def _rate_headers(decision: RateDecision) -> dict[str, str]:
    reset_at = datetime.now(UTC) + timedelta(seconds=decision.reset_in)
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": reset_at.isoformat(),
    }


@web.middleware
async def rate_limit_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Reject over-limit clients with 429 before any handler runs."""
    if not request.path.startswith("/api/"):
        return await handler(request)

    limiter = request.app[RATE_LIMITER]
    key = client_key_for(request.headers, request.remote)
    try:
        decision = limiter.admit(key)
    except RateLimitExceeded as exc:
        retry_after = max(1, math.ceil(exc.retry_after))
        return web.json_response(
            {"success": False, "error": "too many requests", "retry_after": retry_after},
            status=429,
            headers={
                "Retry-After": str(retry_after),
                "X-RateLimit-Limit": str(limiter.limit),
                "X-RateLimit-Remaining": "0",
            },
        )

    response = await handler(request)
    response.headers.update(_rate_headers(decision))
    return response


async def _health(request: web.Request) -> web.Response:
    """GET /api/health — basic liveness check."""
    return web.json_response({"status": "ok", "time": datetime.now(UTC).isoformat()})


async def _run_batch(request: web.Request) -> web.Response:
    """POST /api/scheduled/run — run one batch now and return its report."""
    secret = request.headers.get("X-Trigger-Secret", "")
    if not settings.trigger_secret or not hmac.compare_digest(secret, settings.trigger_secret):
        logger.warning("Manual trigger rejected: invalid secret")
        return web.json_response({"error": "unauthorized"}, status=401)

    report = await request.app[ORCHESTRATOR].run_batch()
    status = 200 if report.success else 503
    return web.json_response(report.to_dict(), status=status)


def _create_web_app(
    orchestrator: ScheduleOrchestrator,
    limiter: RateLimiter,
) -> web.Application:
    """Build the aiohttp Application with routes and middleware."""
    app = web.Application(middlewares=[rate_limit_middleware])
    app[RATE_LIMITER] = limiter
    app[ORCHESTRATOR] = orchestrator
    app.router.add_get("/api/health", _health)
    app.router.add_post("/api/scheduled/run", _run_batch)
    return app


class ApiServer:
    """Manages the aiohttp server lifecycle."""

    def __init__(
        self,
        orchestrator: ScheduleOrchestrator,
        limiter: RateLimiter,
        host: str | None = None,
        port: int | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._limiter = limiter
        self.host = host or settings.api_host
        self.port = settings.api_port if port is None else port
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Start listening."""
        app = _create_web_app(self._orchestrator, self._limiter)
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(
            "API server listening on %s:%d (rate limit %d/%ss)",
            self.host,
            self.port,
            self._limiter.limit,
            self._limiter.window_seconds,
        )

    async def stop(self) -> None:
        """Shut down the server gracefully."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("API server stopped")
