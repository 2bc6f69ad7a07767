"""STMS entry point: API server plus the batch timer."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from stms.api.server import ApiServer
from stms.config import settings
from stms.notifications import EmailChannel, NotificationRouter, NotifyXChannel, WebhookChannel
from stms.ratelimit import RateLimiter
from stms.scheduler.alerts import AlertService
from stms.scheduler.executor import TaskExecutor
from stms.scheduler.http_client import HttpxClient
from stms.scheduler.log_store import LogStore
from stms.scheduler.orchestrator import ScheduleOrchestrator
from stms.scheduler.recorder import ExecutionLogRecorder
from stms.scheduler.store import TaskStore

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logger = logging.getLogger(__name__)


def build_router() -> NotificationRouter:
    """Return the shared router with the built-in channels registered."""
    router = NotificationRouter.get()
    if router.list_channels():
        return router
    timeout_ms = settings.channel_timeout_ms
    router.register_channel(WebhookChannel(timeout_ms=timeout_ms))
    router.register_channel(
        EmailChannel(
            api_key=settings.resend_api_key,
            sender=settings.email_from,
            sender_name=settings.email_from_name,
            timeout_ms=timeout_ms,
        )
    )
    router.register_channel(NotifyXChannel(api_key=settings.notifyx_api_key, timeout_ms=timeout_ms))
    return router


def build_orchestrator() -> ScheduleOrchestrator:
    """Wire stores, executor, recorder, and alerts from settings."""
    router = build_router()
    task_store = TaskStore.get()
    log_store = LogStore()
    alerts = AlertService(
        router,
        log_store,
        threshold=settings.failure_alert_threshold,
        channels=settings.get_alert_channel_configs(),
    )
    return ScheduleOrchestrator(
        store=task_store,
        executor=TaskExecutor(http_client=HttpxClient(), router=router),
        recorder=ExecutionLogRecorder(log_store),
        alerts=alerts,
    )


async def _tick(orchestrator: ScheduleOrchestrator) -> None:
    """Timer callback; the orchestrator never raises."""
    report = await orchestrator.run_batch()
    if report.success:
        logger.info("Scheduled batch ran %d task(s)", report.processed)
    else:
        logger.error("Scheduled batch failed: %s", report.errors)
    if report.errors:
        logger.warning("%d task error(s) in batch", len(report.errors))


async def run_service() -> None:
    """Serve the API and run a batch on every tick until SIGINT/SIGTERM."""
    orchestrator = build_orchestrator()
    server = ApiServer(orchestrator, RateLimiter())
    scheduler = AsyncIOScheduler(timezone=settings.scheduler_timezone)
    scheduler.add_job(
        _tick,
        trigger=CronTrigger.from_crontab(settings.tick_cron, timezone=settings.scheduler_timezone),
        args=[orchestrator],
        id="batch",
        name="Scheduled batch",
        max_instances=1,
        coalesce=True,
    )

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    await server.start()
    scheduler.start()
    logger.info("Scheduler started (tick=%r, tz=%s)", settings.tick_cron, settings.scheduler_timezone)
    try:
        await stop.wait()
    finally:
        scheduler.shutdown(wait=False)
        await server.stop()
        logger.info("Scheduler stopped")


def main(argv: list[str] | None = None) -> int:
    """Start the service, or run a single batch with ``--once``."""
    parser = argparse.ArgumentParser(prog="stms", description=__doc__)
    parser.add_argument("--once", action="store_true", help="run one batch and exit")
    args = parser.parse_args(argv)

    if args.once:
        report = asyncio.run(build_orchestrator().run_batch())
        logger.info("Batch report: %s", report.to_dict())
        return 0 if report.success else 1

    logger.info("Starting STMS (db=%s)", settings.database_path)
    asyncio.run(run_service())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
