"""Background tasks for scheduled vendor syncs."""

import logging
from typing import Optional

from catalog_sync import metrics
from catalog_sync.ingest.registry import AdapterRegistry
from catalog_sync.worker.orchestrator import (
    MissingCredentialsError,
    SyncAlreadyRunningError,
    SyncOrchestrator,
    SyncRunStats,
    VendorDisabledError,
)
from catalog_sync.reconcile.ranking import VendorNotFoundError

logger = logging.getLogger(__name__)


class TaskRunner:
    """Runner for background sync tasks.

    Holds the process-wide orchestrator so scheduled jobs and API-triggered
    passes share one priority cache and one request queue.
    """

    def __init__(self, orchestrator: Optional[SyncOrchestrator] = None):
        self._orchestrator = orchestrator

    @property
    def orchestrator(self) -> SyncOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = SyncOrchestrator()
        return self._orchestrator

    async def initialize(
        self, vendor_slugs: list[str], registered: Optional[list[str]] = None
    ) -> list[str]:
        """
        Warm the priority cache and check every vendor has an adapter.

        Args:
            vendor_slugs: Vendors present in the database
            registered: Slugs with an adapter, defaults to the adapter registry

        Returns:
            Database vendors with no adapter; syncs for them cannot run
        """
        await self.orchestrator.resolver.preload(vendor_slugs)

        known = set(registered if registered is not None else AdapterRegistry.list_vendors())
        unsupported = sorted(slug for slug in vendor_slugs if slug not in known)
        if unsupported:
            logger.warning(f"No feed adapter registered for: {', '.join(unsupported)}")
        return unsupported

    async def sync_vendor(
        self,
        vendor_slug: str,
        mode: str = "incremental",
        trigger: str = "scheduled",
        company_id: Optional[int] = None,
    ) -> Optional[SyncRunStats]:
        """
        Background sync entry point. Never raises.

        Args:
            vendor_slug: Vendor to sync
            mode: 'full' or 'incremental'
            trigger: 'scheduled' or 'manual'
            company_id: Company whose credentials to use

        Returns:
            Run statistics, or None when the pass did not start
        """
        job_type = f"sync:{vendor_slug}"
        try:
            stats = await self.orchestrator.run_sync_pass(
                vendor_slug, mode=mode, trigger=trigger, company_id=company_id
            )
        except SyncAlreadyRunningError:
            logger.info(f"Sync for {vendor_slug} skipped: pass already in progress")
            metrics.record_scheduler_run(job_type, True)
            return None
        except (VendorNotFoundError, VendorDisabledError, MissingCredentialsError) as e:
            logger.warning(f"Sync for {vendor_slug} not started: {e}")
            metrics.record_scheduler_run(job_type, False)
            return None
        except Exception as e:
            logger.error(f"Sync for {vendor_slug} crashed: {e}", exc_info=True)
            metrics.record_scheduler_run(job_type, False)
            return None

        metrics.record_scheduler_run(job_type, stats.status == "success")
        return stats


task_runner = TaskRunner()
