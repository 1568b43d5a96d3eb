"""Vendor sync pass orchestration.

One pass fetches a vendor's feed through the shared request queue, maps each
row to a candidate, merges it into the canonical catalog in its own
transaction and tallies exactly one outcome per row:

    created    new canonical product
    updated    at least one field changed
    unchanged  merge found nothing new
    skipped    row excluded by a vendor business rule
    failed     row could not be mapped or written

Run states are in_progress -> success | error. A second pass for the same
vendor is rejected while one is in progress, unless the live one is older
than the staleness threshold, in which case it is closed as error first.
"""

import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_sync import metrics
from catalog_sync.config import settings
from catalog_sync.db.credentials import CredentialStore
from catalog_sync.db.models import Product, SyncRun, Vendor, VendorProductMapping
from catalog_sync.db.session import AsyncSessionLocal
from catalog_sync.ingest.base import BaseVendorAdapter
from catalog_sync.ingest.errors import CandidateError, FeedError
from catalog_sync.ingest.registry import AdapterRegistry
from catalog_sync.ingest.request_queue import QueueClearedError, RequestQueue, vendor_request_queue
from catalog_sync.logging_config import get_logger
from catalog_sync.reconcile.merge import apply_merge, merge
from catalog_sync.reconcile.priority import PriorityResolver
from catalog_sync.reconcile.ranking import VendorNotFoundError
from catalog_sync.reconcile.types import CandidateRecord, MergeContext, MergeOutcome

logger = logging.getLogger(__name__)

SYNC_MODES = ("full", "incremental")

CREATED = "created"
UPDATED = "updated"
UNCHANGED = "unchanged"
SKIPPED = "skipped"
FAILED = "failed"


class SyncAlreadyRunningError(RuntimeError):
    """A pass for this vendor is already in progress."""

    def __init__(self, vendor_slug: str, run_id: Optional[int] = None):
        super().__init__(f"sync already in progress for {vendor_slug}")
        self.vendor_slug = vendor_slug
        self.run_id = run_id


class VendorDisabledError(RuntimeError):
    """Vendor exists but is disabled."""


class MissingCredentialsError(RuntimeError):
    """No usable credentials are stored for the vendor."""


@dataclass
class SyncRunStats:
    """Counts and status of one pass."""

    run_id: Optional[int]
    vendor_slug: str
    mode: str
    status: str
    trigger: str = "manual"
    company_id: Optional[int] = None
    total_records: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    failed: int = 0
    images_added: int = 0
    images_upgraded: int = 0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    error_kind: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def processed(self) -> int:
        return self.created + self.updated + self.unchanged + self.skipped + self.failed

    @classmethod
    def from_run(cls, run: SyncRun) -> "SyncRunStats":
        return cls(
            run_id=run.id,
            vendor_slug=run.vendor_slug,
            mode=run.mode,
            status=run.status,
            trigger=run.trigger,
            company_id=run.company_id,
            total_records=run.total_records,
            created=run.created_count,
            updated=run.updated_count,
            unchanged=run.unchanged_count,
            skipped=run.skipped_count,
            failed=run.failed_count,
            images_added=run.images_added,
            images_upgraded=run.images_upgraded,
            started_at=run.started_at,
            finished_at=run.finished_at,
            error_kind=run.error_kind,
            error_message=run.error_message,
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["processed"] = self.processed
        return data


@dataclass
class ConnectionTestResult:
    success: bool
    message: str
    error_kind: Optional[str] = None


@dataclass
class _Tally:
    counts: dict[str, int] = field(
        default_factory=lambda: {CREATED: 0, UPDATED: 0, UNCHANGED: 0, SKIPPED: 0, FAILED: 0}
    )
    images_added: int = 0
    images_upgraded: int = 0
    total: int = 0

    def add(self, outcome: str, image_change: Optional[str] = None) -> None:
        self.counts[outcome] += 1
        if image_change == "added":
            self.images_added += 1
        elif image_change == "upgraded":
            self.images_upgraded += 1

    def as_columns(self) -> dict:
        return {
            "total_records": self.total,
            "created_count": self.counts[CREATED],
            "updated_count": self.counts[UPDATED],
            "unchanged_count": self.counts[UNCHANGED],
            "skipped_count": self.counts[SKIPPED],
            "failed_count": self.counts[FAILED],
            "images_added": self.images_added,
            "images_upgraded": self.images_upgraded,
        }


class SyncOrchestrator:
    """Runs vendor sync passes and connection tests."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        resolver: Optional[PriorityResolver] = None,
        queue: Optional[RequestQueue] = None,
        adapter_lookup: Optional[Callable[[str], BaseVendorAdapter]] = None,
        credential_store: Optional[CredentialStore] = None,
        stale_after_seconds: Optional[int] = None,
        progress_interval: Optional[int] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self._session_factory = session_factory or AsyncSessionLocal
        self.resolver = resolver or PriorityResolver(self._session_factory)
        self._queue = queue or vendor_request_queue
        self._adapter_lookup = adapter_lookup or AdapterRegistry.get_adapter
        self._credentials = credential_store or CredentialStore(self._session_factory)
        self._stale_after = (
            stale_after_seconds if stale_after_seconds is not None else settings.sync_stale_after_seconds
        )
        self._progress_interval = max(1, progress_interval or settings.sync_progress_interval)
        self._clock = clock

    @property
    def queue(self) -> RequestQueue:
        return self._queue

    async def preflight(self, vendor_slug: str, company_id: Optional[int] = None) -> None:
        """
        Check that a pass for the vendor could start now.

        Raises the same errors run_sync_pass raises before it opens a run.
        A live run older than the staleness threshold does not block.
        """
        await self._load_vendor(vendor_slug)
        self._adapter_lookup(vendor_slug)
        if not await self._credentials.get(vendor_slug, company_id):
            raise MissingCredentialsError(f"no credentials configured for {vendor_slug}")

        now = self._clock()
        async with self._session_factory() as session:
            result = await session.execute(
                select(SyncRun).where(
                    SyncRun.vendor_slug == vendor_slug, SyncRun.status == "in_progress"
                )
            )
            for live in result.scalars().all():
                if (now - live.started_at).total_seconds() <= self._stale_after:
                    raise SyncAlreadyRunningError(vendor_slug, live.id)

    async def run_sync_pass(
        self,
        vendor_slug: str,
        mode: str = "full",
        trigger: str = "manual",
        company_id: Optional[int] = None,
    ) -> SyncRunStats:
        """
        Run one sync pass for a vendor.

        Args:
            vendor_slug: Vendor to sync
            mode: 'full' or 'incremental'
            trigger: 'scheduled' or 'manual'
            company_id: Company whose credentials and vendor mappings to use

        Returns:
            SyncRunStats with status 'success' or 'error'. Batch-level feed
            failures are reported here, not raised.

        Raises:
            SyncAlreadyRunningError: A live pass exists for the vendor
            VendorNotFoundError / VendorDisabledError / MissingCredentialsError:
                The pass could not start
        """
        if mode not in SYNC_MODES:
            raise ValueError(f"mode must be one of {SYNC_MODES}, got {mode!r}")

        vendor = await self._load_vendor(vendor_slug)
        adapter = self._adapter_lookup(vendor_slug)

        credentials = await self._credentials.get(vendor_slug, company_id)
        if not credentials:
            raise MissingCredentialsError(f"no credentials configured for {vendor_slug}")

        since = None
        if mode == "incremental":
            if adapter.supports_incremental:
                since = await self._last_success_start(vendor_slug)
            if since is None:
                logger.info(f"{vendor_slug}: no incremental baseline, running full pass")
                mode = "full"

        run = await self._start_run(vendor_slug, mode, trigger, company_id)
        log = get_logger(__name__, vendor=vendor_slug, run_id=run.id, company_id=company_id)
        log.info(f"Sync pass {run.id} started ({mode}, {trigger})")

        started = time.monotonic()
        tally = _Tally()

        fetch_started = time.monotonic()
        try:
            rows = await self._queue.enqueue(lambda: adapter.fetch_feed(credentials, since))
        except FeedError as e:
            metrics.record_feed_fetch(vendor_slug, False, time.monotonic() - fetch_started)
            log.error(f"Feed fetch failed ({e.kind}): {e}")
            return await self._finalize(run.id, tally, "error", e.kind, str(e), started)
        except QueueClearedError as e:
            log.warning(f"Feed fetch cancelled: {e}")
            return await self._finalize(run.id, tally, "error", "transient", str(e), started)
        except Exception as e:
            metrics.record_feed_fetch(vendor_slug, False, time.monotonic() - fetch_started)
            log.error(f"Feed fetch crashed: {e}", exc_info=True)
            return await self._finalize(run.id, tally, "error", "internal", f"{type(e).__name__}: {e}", started)

        metrics.record_feed_fetch(vendor_slug, True, time.monotonic() - fetch_started)
        tally.total = len(rows)
        log.info(f"Processing {len(rows)} rows")

        try:
            for index, row in enumerate(rows, start=1):
                outcome, image_change = await self._process_row(
                    adapter, row, vendor.default_retail_vertical_id, company_id, log
                )
                tally.add(outcome, image_change)
                metrics.record_candidate(vendor_slug, outcome)
                if image_change:
                    metrics.record_image_change(vendor_slug, image_change)

                if index % self._progress_interval == 0:
                    await self._flush_progress(run.id, tally)
                    log.info(
                        f"Progress {index}/{len(rows)} (new {tally.counts[CREATED]}, "
                        f"updated {tally.counts[UPDATED]}, unchanged {tally.counts[UNCHANGED]}, "
                        f"skipped {tally.counts[SKIPPED]}, failed {tally.counts[FAILED]})"
                    )
        except Exception as e:
            log.error(f"Sync pass aborted: {e}", exc_info=True)
            return await self._finalize(run.id, tally, "error", "internal", f"{type(e).__name__}: {e}", started)

        return await self._finalize(run.id, tally, "success", None, None, started)

    async def test_connection(
        self,
        vendor_slug: str,
        credentials: Optional[dict] = None,
        company_id: Optional[int] = None,
    ) -> ConnectionTestResult:
        """
        Check vendor credentials through the request queue.

        Stored credentials are used when none are given.
        """
        try:
            adapter = self._adapter_lookup(vendor_slug)
        except ValueError as e:
            return ConnectionTestResult(False, str(e), "internal")

        if credentials is None:
            credentials = await self._credentials.get(vendor_slug, company_id)
        if not credentials:
            return ConnectionTestResult(False, f"no credentials configured for {vendor_slug}", "authentication")

        try:
            message = await self._queue.enqueue(lambda: adapter.test_connection(credentials))
        except FeedError as e:
            logger.warning(f"Connection test for {vendor_slug} failed ({e.kind}): {e}")
            return ConnectionTestResult(False, str(e), e.kind)
        except QueueClearedError as e:
            return ConnectionTestResult(False, str(e), "transient")

        logger.info(f"Connection test for {vendor_slug} succeeded")
        return ConnectionTestResult(True, message)

    async def _load_vendor(self, vendor_slug: str) -> Vendor:
        async with self._session_factory() as session:
            result = await session.execute(select(Vendor).where(Vendor.slug == vendor_slug))
            vendor = result.scalar_one_or_none()
        if vendor is None:
            raise VendorNotFoundError(vendor_slug)
        if not vendor.enabled:
            raise VendorDisabledError(f"vendor {vendor_slug} is disabled")
        return vendor

    async def _last_success_start(self, vendor_slug: str) -> Optional[datetime]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(SyncRun.started_at)
                .where(SyncRun.vendor_slug == vendor_slug, SyncRun.status == "success")
                .order_by(SyncRun.started_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def _start_run(
        self, vendor_slug: str, mode: str, trigger: str, company_id: Optional[int]
    ) -> SyncRun:
        now = self._clock()
        async with self._session_factory() as session:
            result = await session.execute(
                select(SyncRun).where(
                    SyncRun.vendor_slug == vendor_slug, SyncRun.status == "in_progress"
                )
            )
            live_runs = result.scalars().all()

            for live in live_runs:
                age = (now - live.started_at).total_seconds()
                if age <= self._stale_after:
                    metrics.record_sync_conflict(vendor_slug)
                    raise SyncAlreadyRunningError(vendor_slug, live.id)

                logger.warning(
                    f"{vendor_slug}: run {live.id} in progress for {age:.0f}s "
                    f"(> {self._stale_after}s), marking as error"
                )
                live.status = "error"
                live.finished_at = now
                live.error_kind = "stale"
                live.error_message = f"Marked stale after {age:.0f}s without finishing"
                metrics.record_stale_recovered()

            if live_runs:
                await session.flush()

            run = SyncRun(
                vendor_slug=vendor_slug,
                mode=mode,
                trigger=trigger,
                company_id=company_id,
                status="in_progress",
                started_at=now,
            )
            session.add(run)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                metrics.record_sync_conflict(vendor_slug)
                raise SyncAlreadyRunningError(vendor_slug)
            return run

    async def _process_row(
        self,
        adapter: BaseVendorAdapter,
        row: dict,
        retail_vertical_id: Optional[int],
        company_id: Optional[int],
        log: logging.LoggerAdapter,
    ) -> tuple[str, Optional[str]]:
        try:
            candidate = adapter.normalize(row, retail_vertical_id)
        except CandidateError as e:
            log.warning(f"Row rejected: {e}", extra={"raw_row": row})
            return FAILED, None
        except Exception as e:
            log.error(f"Row mapping crashed: {e}", extra={"raw_row": row}, exc_info=True)
            return FAILED, None

        if candidate is None:
            return SKIPPED, None

        try:
            return await self._write_candidate(candidate, company_id)
        except IntegrityError:
            # Another vendor's pass inserted the UPC first; merge into its record
            log.info(f"UPC {candidate.upc} inserted concurrently, retrying as merge")
            try:
                return await self._write_candidate(candidate, company_id)
            except Exception as e:
                log.error(f"Write failed for UPC {candidate.upc}: {e}", extra={"raw_row": row}, exc_info=True)
                return FAILED, None
        except Exception as e:
            log.error(f"Write failed for UPC {candidate.upc}: {e}", extra={"raw_row": row}, exc_info=True)
            return FAILED, None

    async def _merge_context(self, product: Optional[Product], candidate: CandidateRecord) -> MergeContext:
        vertical = candidate.retail_vertical_id
        if product is not None and product.retail_vertical_id is not None:
            vertical = product.retail_vertical_id

        existing_priority = None
        existing_quality = None
        if product is not None:
            if product.priority_source:
                existing_priority = await self.resolver.priority(product.priority_source, vertical)
            existing_quality = await self.resolver.image_quality(product.image_source)

        return MergeContext(
            candidate_priority=await self.resolver.priority(candidate.vendor_slug, vertical),
            existing_priority=existing_priority,
            candidate_image_quality=await self.resolver.image_quality(candidate.vendor_slug),
            existing_image_quality=existing_quality,
            now=self._clock(),
        )

    async def _write_candidate(
        self, candidate: CandidateRecord, company_id: Optional[int]
    ) -> tuple[str, Optional[str]]:
        async with self._session_factory() as session:
            result = await session.execute(select(Product).where(Product.upc == candidate.upc))
            product = result.scalar_one_or_none()

            context = await self._merge_context(product, candidate)
            merge_result = merge(product, candidate, context)

            if merge_result.outcome == MergeOutcome.INSERT:
                product = Product(**merge_result.changes)
                session.add(product)
                await session.flush()
                outcome = CREATED
            elif merge_result.outcome == MergeOutcome.UPDATE:
                apply_merge(product, merge_result)
                outcome = UPDATED
            else:
                outcome = UNCHANGED

            await self._upsert_mapping(session, product, candidate, company_id, context.now)
            await session.commit()

        return outcome, merge_result.image_change

    @staticmethod
    async def _upsert_mapping(
        session: AsyncSession,
        product: Product,
        candidate: CandidateRecord,
        company_id: Optional[int],
        now: datetime,
    ) -> None:
        query = select(VendorProductMapping).where(
            VendorProductMapping.product_id == product.id,
            VendorProductMapping.vendor_slug == candidate.vendor_slug,
        )
        if company_id is None:
            query = query.where(VendorProductMapping.company_id.is_(None))
        else:
            query = query.where(VendorProductMapping.company_id == company_id)
        result = await session.execute(query)
        mapping = result.scalar_one_or_none()

        if mapping is None:
            mapping = VendorProductMapping(
                product_id=product.id,
                vendor_slug=candidate.vendor_slug,
                company_id=company_id,
                created_at=now,
            )
            session.add(mapping)

        mapping.vendor_sku = candidate.vendor_sku
        mapping.last_seen_at = now
        if candidate.has_pricing:
            mapping.cost = candidate.cost
            mapping.map_price = candidate.map_price
            mapping.msrp = candidate.msrp
            mapping.quantity = candidate.quantity
            mapping.price_updated_at = now

    async def _flush_progress(self, run_id: int, tally: _Tally) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(SyncRun)
                .where(SyncRun.id == run_id, SyncRun.status == "in_progress")
                .values(**tally.as_columns())
            )
            await session.commit()

    async def _finalize(
        self,
        run_id: int,
        tally: _Tally,
        status: str,
        error_kind: Optional[str],
        error_message: Optional[str],
        started: float,
    ) -> SyncRunStats:
        """
        Close a run with its final tally.

        Only an in_progress row is written. A run the watchdog already
        closed as stale keeps that verdict and its counters.
        """
        async with self._session_factory() as session:
            result = await session.execute(
                update(SyncRun)
                .where(SyncRun.id == run_id, SyncRun.status == "in_progress")
                .values(
                    status=status,
                    finished_at=self._clock(),
                    error_kind=error_kind,
                    error_message=error_message,
                    **tally.as_columns(),
                )
            )
            await session.commit()
            closed = result.rowcount == 1

            run = await session.get(SyncRun, run_id)
            stats = SyncRunStats.from_run(run)

        duration = time.monotonic() - started
        if not closed:
            logger.warning(
                f"{stats.vendor_slug}: sync pass {run_id} was already closed as {stats.status} "
                f"({stats.error_kind}); discarding {status} result after {duration:.1f}s"
            )
            return stats

        metrics.record_sync_run(stats.vendor_slug, status, duration)
        logger.info(
            f"{stats.vendor_slug}: sync pass {run_id} finished {status} in {duration:.1f}s "
            f"(new {stats.created}, updated {stats.updated}, unchanged {stats.unchanged}, "
            f"skipped {stats.skipped}, failed {stats.failed})"
        )
        return stats
