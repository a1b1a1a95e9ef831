"""
ARQ background worker for PaySettle.

Runs the scheduled webhook dispatcher: every minute one claim-and-deliver
cycle over the delivery job table. Overlapping runs are safe because the
claim itself is atomic.
"""
import asyncio

import httpx
from arq import cron
from arq.connections import RedisSettings

from paysettle.config import settings
from paysettle.database import AsyncSessionLocal
from paysettle.logging_config import get_logger
from paysettle.services.webhook_service import dispatch_pending_deliveries

log = get_logger(component="worker")


async def startup(ctx: dict):
    """Share one HTTP client across dispatcher runs."""
    ctx["http_client"] = httpx.AsyncClient(timeout=settings.WEBHOOK_TIMEOUT_SECONDS)
    log.info("worker_started", redis=settings.REDIS_URL)


async def shutdown(ctx: dict):
    client = ctx.pop("http_client", None)
    if client is not None:
        await client.aclose()
    log.info("worker_stopped")


async def dispatch_webhook_deliveries(ctx: dict) -> dict:
    """Claim due delivery jobs and deliver them."""
    async with AsyncSessionLocal() as db:
        summary = await dispatch_pending_deliveries(db, client=ctx.get("http_client"))
    return summary


# Register functions for ARQ
ARQ_FUNCTIONS = [
    dispatch_webhook_deliveries,
]


async def main():
    """Run one dispatcher cycle without the worker (cron/manual invocation)."""
    async with AsyncSessionLocal() as db:
        summary = await dispatch_pending_deliveries(db)
    log.info("manual_dispatch_finished", **summary)


class WorkerSettings:
    """Settings for ARQ worker - use with 'arq paysettle.worker.WorkerSettings'"""
    redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)
    job_timeout = 300
    max_tries = 1
    functions = ARQ_FUNCTIONS
    cron_jobs = [
        cron(dispatch_webhook_deliveries, second=0, run_at_startup=True),
    ]
    on_startup = startup
    on_shutdown = shutdown


if __name__ == "__main__":
    asyncio.run(main())
