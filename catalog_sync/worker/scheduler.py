"""APScheduler job definitions."""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from catalog_sync.config import settings
from catalog_sync.worker.sync_watchdog import sync_watchdog_check
from catalog_sync.worker.tasks import TaskRunner, task_runner

logger = logging.getLogger(__name__)


def setup_scheduler(
    runner: Optional[TaskRunner] = None,
    schedules: Optional[dict[str, str]] = None,
) -> AsyncIOScheduler:
    """
    Setup and configure APScheduler.

    One cron job per vendor from settings.vendor_sync_schedules, plus the
    stale-run watchdog. Passes for the same vendor never overlap in this
    process (max_instances=1); the in_progress guard covers other processes.

    Returns:
        Configured scheduler instance
    """
    runner = runner or task_runner
    schedules = schedules if schedules is not None else settings.vendor_sync_schedules
    scheduler = AsyncIOScheduler()

    for vendor_slug, cron in schedules.items():
        try:
            trigger = CronTrigger.from_crontab(cron)
        except ValueError as e:
            logger.error(f"Invalid sync schedule for {vendor_slug} ({cron!r}): {e}")
            continue

        scheduler.add_job(
            runner.sync_vendor,
            trigger,
            args=[vendor_slug],
            id=f"sync_{vendor_slug}",
            name=f"Catalog sync: {vendor_slug}",
            max_instances=1,  # Prevent overlapping runs
            coalesce=True,
            misfire_grace_time=600,
            replace_existing=True,
        )

    # Sync watchdog - closes runs abandoned by a crashed worker
    scheduler.add_job(
        sync_watchdog_check,
        IntervalTrigger(seconds=settings.sync_watchdog_interval_seconds),
        id="sync_watchdog",
        name="Sync run watchdog",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    logger.info(
        "Scheduler configured: %d vendor sync jobs (%s), sync watchdog every %d seconds",
        len(schedules),
        ", ".join(f"{slug}={cron}" for slug, cron in schedules.items()),
        settings.sync_watchdog_interval_seconds,
    )

    return scheduler
