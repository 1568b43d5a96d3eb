"""Vendor priority resolver with a TTL cache.

Lower numbers win. A vendor's rank within the product's retail vertical is
authoritative; the global vendor rank is the fallback. Vendors with no rank,
or unknown slugs, get DEFAULT_PRIORITY so they never beat a ranked vendor.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from catalog_sync import metrics
from catalog_sync.config import settings
from catalog_sync.db.models import Vendor
from catalog_sync.reconcile.types import DEFAULT_PRIORITY, ImageQuality

logger = logging.getLogger(__name__)

MIN_PRIORITY = 1


@dataclass
class VendorProfile:
    """Cached ranking data for one vendor."""

    priority: int = DEFAULT_PRIORITY
    image_quality: Optional[ImageQuality] = None
    vertical_priorities: dict[int, int] = field(default_factory=dict)
    known: bool = False


@dataclass
class _CacheEntry:
    profile: VendorProfile
    loaded_at: float


class PriorityResolver:
    """Resolves vendor priority and image tier by slug.

    Slugs are matched exactly. Entries expire after ttl_seconds so rank
    changes made by administrators show up without a restart; invalidate()
    makes them show up immediately.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._session_factory = session_factory
        self._ttl = ttl_seconds if ttl_seconds is not None else settings.priority_cache_ttl_seconds
        self._clock = clock
        self._cache: dict[str, _CacheEntry] = {}
        self._lock = asyncio.Lock()

    async def priority(self, vendor_slug: str, retail_vertical_id: Optional[int] = None) -> int:
        """
        Get a vendor's priority.

        Args:
            vendor_slug: Vendor slug
            retail_vertical_id: Product's retail vertical, if known

        Returns:
            Rank (1 is best) or DEFAULT_PRIORITY for unranked/unknown vendors
        """
        if not vendor_slug:
            return DEFAULT_PRIORITY

        profile = await self._profile(vendor_slug)
        if retail_vertical_id is not None and retail_vertical_id in profile.vertical_priorities:
            return profile.vertical_priorities[retail_vertical_id]
        return profile.priority

    async def image_quality(self, vendor_slug: Optional[str]) -> Optional[ImageQuality]:
        """Get a vendor's image tier, None if unknown."""
        if not vendor_slug:
            return None
        profile = await self._profile(vendor_slug)
        return profile.image_quality

    async def preload(self, vendor_slugs: list[str]) -> None:
        """Warm the cache for the given vendors."""
        await asyncio.gather(*(self._profile(slug) for slug in vendor_slugs))
        logger.info(f"Preloaded vendor priorities for {len(vendor_slugs)} vendors")

    async def invalidate(self, vendor_slug: str) -> None:
        """Drop one vendor's cache entry."""
        async with self._lock:
            if self._cache.pop(vendor_slug, None) is not None:
                logger.info(f"Priority cache invalidated for {vendor_slug}")

    async def clear(self) -> None:
        """Drop every cache entry."""
        async with self._lock:
            size = len(self._cache)
            self._cache.clear()
        logger.info(f"Priority cache cleared ({size} entries removed)")

    def cache_stats(self) -> dict:
        now = self._clock()
        return {
            "size": len(self._cache),
            "ttl_seconds": self._ttl,
            "entries": [
                {
                    "vendor": slug,
                    "priority": entry.profile.priority,
                    "age_seconds": round(now - entry.loaded_at, 1),
                }
                for slug, entry in self._cache.items()
            ],
        }

    async def _profile(self, vendor_slug: str) -> VendorProfile:
        async with self._lock:
            cached = self._cache.get(vendor_slug)
        now = self._clock()

        if cached is not None and now - cached.loaded_at < self._ttl:
            metrics.record_priority_lookup("hit")
            return cached.profile

        try:
            profile = await self._load(vendor_slug)
        except SQLAlchemyError as e:
            logger.error(f"Priority lookup failed for {vendor_slug}: {e}")
            if cached is not None:
                metrics.record_priority_lookup("stale")
                logger.warning(f"Using stale cached priority for {vendor_slug}")
                return cached.profile
            metrics.record_priority_lookup("default")
            return VendorProfile()

        async with self._lock:
            self._cache[vendor_slug] = _CacheEntry(profile, now)
        metrics.record_priority_lookup("miss" if profile.known else "default")
        return profile

    async def _load(self, vendor_slug: str) -> VendorProfile:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Vendor)
                .options(selectinload(Vendor.vertical_ranks))
                .where(Vendor.slug == vendor_slug)
            )
            vendor = result.scalar_one_or_none()

            if vendor is None:
                logger.info(
                    f"Vendor {vendor_slug!r} not found, using default priority {DEFAULT_PRIORITY}"
                )
                return VendorProfile()

            priority = vendor.priority
            if priority is None or priority < MIN_PRIORITY:
                if priority is not None:
                    logger.warning(f"Invalid priority {priority} for {vendor_slug}, using default")
                priority = DEFAULT_PRIORITY

            return VendorProfile(
                priority=priority,
                image_quality=ImageQuality.parse(vendor.image_quality),
                vertical_priorities={
                    rank.retail_vertical_id: rank.priority
                    for rank in vendor.vertical_ranks
                    if rank.priority >= MIN_PRIORITY
                },
                known=True,
            )
