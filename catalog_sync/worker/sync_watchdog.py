"""Watchdog task that closes sync runs left in_progress by a crashed worker."""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_sync import metrics
from catalog_sync.config import settings
from catalog_sync.db.models import SyncRun
from catalog_sync.db.session import AsyncSessionLocal

logger = logging.getLogger(__name__)


async def recover_stale_runs(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    stale_after_seconds: Optional[int] = None,
    now: Optional[datetime] = None,
    reason_prefix: str = "Watchdog",
) -> int:
    """
    Mark in_progress runs older than the staleness threshold as error.

    The orchestrator performs the same check when a new pass starts; this
    keeps status accurate for vendors that are not synced again soon.

    Returns:
        Number of runs recovered
    """
    session_factory = session_factory or AsyncSessionLocal
    stale_after = stale_after_seconds if stale_after_seconds is not None else settings.sync_stale_after_seconds
    now = now or datetime.utcnow()
    cutoff = now - timedelta(seconds=stale_after)

    async with session_factory() as db:
        result = await db.execute(
            select(SyncRun).where(SyncRun.status == "in_progress", SyncRun.started_at < cutoff)
        )
        stale_runs = result.scalars().all()

        for run in stale_runs:
            elapsed = (now - run.started_at).total_seconds()
            logger.warning(
                f"{reason_prefix}: sync run {run.id} for {run.vendor_slug} in progress for "
                f"{elapsed:.0f}s (> {stale_after}s). Marking as error."
            )
            run.status = "error"
            run.finished_at = now
            run.error_kind = "stale"
            run.error_message = f"{reason_prefix}: no completion after {elapsed:.0f}s"

        if stale_runs:
            await db.commit()
            metrics.record_stale_recovered(len(stale_runs))

    return len(stale_runs)


async def sync_watchdog_check() -> None:
    """Scheduler entry point. Never raises."""
    try:
        await recover_stale_runs()
        metrics.record_scheduler_run("sync_watchdog", True)
    except Exception as e:
        logger.error(f"Sync watchdog check failed: {e}", exc_info=True)
        metrics.record_scheduler_run("sync_watchdog", False)
