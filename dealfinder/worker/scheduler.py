"""APScheduler job definitions."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from dealfinder.config import settings
from dealfinder.normalize.currency import CurrencyTable
from dealfinder.worker.watch_runner import WatchRunner

logger = logging.getLogger(__name__)


def setup_scheduler(watch_runner: WatchRunner, currency_table: CurrencyTable) -> AsyncIOScheduler:
    """
    Setup and configure APScheduler.

    Scheduling overview:
    - Watch tick every settings.watch_tick_minutes
    - Exchange rate refresh every settings.exchange_rate_refresh_hours

    Returns:
        Configured scheduler instance (not started)
    """
    scheduler = AsyncIOScheduler()
    tick_minutes = max(1, int(settings.watch_tick_minutes))
    refresh_hours = max(1, int(settings.exchange_rate_refresh_hours))

    scheduler.add_job(
        watch_runner.tick,
        IntervalTrigger(minutes=tick_minutes),
        id="watch_tick",
        name="Run due watches",
        max_instances=1,  # Prevent overlapping runs
        coalesce=True,
        misfire_grace_time=300,
        replace_existing=True,
    )

    scheduler.add_job(
        currency_table.refresh,
        IntervalTrigger(hours=refresh_hours),
        id="currency_refresh",
        name="Refresh exchange rates",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    logger.info(
        "Scheduler configured: watch tick every %d minutes, exchange rate refresh every %d hours",
        tick_minutes,
        refresh_hours,
    )
    return scheduler
