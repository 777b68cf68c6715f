"""APScheduler integration for FastAPI.

Two interval jobs keep the in-memory views fresh: ticker prices and
per-account state. Reconciliation itself is computed on demand from
whatever these jobs last loaded.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from hedgedesk.config import settings
from hedgedesk.engine.runtime import get_runtime
from hedgedesk.services.market_data import refresh_prices

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()

PRICE_JOB_ID = "refresh_prices"
ACCOUNT_JOB_ID = "refresh_accounts"


async def run_price_refresh():
    runtime = get_runtime()
    updated = await refresh_prices(runtime.prices, runtime.client)
    logger.debug(f"Price refresh updated {updated} symbols")


async def run_account_refresh():
    runtime = get_runtime()
    names = runtime.registry.names()
    await runtime.live_state.refresh_all(names)


def _add_interval_job(func, job_id: str, name: str, seconds: int):
    scheduler.add_job(
        func,
        trigger=IntervalTrigger(seconds=seconds),
        id=job_id,
        name=name,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=60,
    )
    logger.info(f"Scheduled {name} every {seconds}s")


def start_scheduler():
    """Register the refresh jobs and start the scheduler."""
    _add_interval_job(run_price_refresh, PRICE_JOB_ID, "Price refresh", settings.price_poll_seconds)
    _add_interval_job(run_account_refresh, ACCOUNT_JOB_ID, "Account refresh", settings.account_poll_seconds)
    scheduler.start()
    logger.info(f"Scheduler started with {len(scheduler.get_jobs())} jobs")


def stop_scheduler():
    """Shut down the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")


def get_scheduler_status() -> dict:
    """Return current scheduler state for the API."""
    jobs = scheduler.get_jobs()
    return {
        "running": scheduler.running,
        "job_count": len(jobs),
        "jobs": [
            {
                "id": j.id,
                "name": j.name,
                "next_run": str(j.next_run_time) if j.next_run_time else None,
                "trigger": str(j.trigger),
            }
            for j in jobs
        ],
    }
