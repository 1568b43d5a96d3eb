"""Vendor rank administration.

Global ranks are unique and dense: the ranked vendors always hold exactly
1..N. Every change invalidates the resolver cache for the vendors it touches.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.db.models import Vendor, VendorVerticalRank
from catalog_sync.reconcile.priority import MIN_PRIORITY, PriorityResolver

logger = logging.getLogger(__name__)


class VendorNotFoundError(LookupError):
    """No vendor with the given slug."""


class DuplicatePriorityError(ValueError):
    """Requested rank is already held by another vendor."""


async def get_vendor(session: AsyncSession, vendor_slug: str) -> Vendor:
    result = await session.execute(select(Vendor).where(Vendor.slug == vendor_slug))
    vendor = result.scalar_one_or_none()
    if vendor is None:
        raise VendorNotFoundError(vendor_slug)
    return vendor


async def assign_priority(
    session: AsyncSession,
    vendor_slug: str,
    priority: int,
    resolver: Optional[PriorityResolver] = None,
) -> Vendor:
    """
    Move a vendor to a new global rank.

    Vendors between the old and new position shift by one so ranks stay
    1..N with no gaps. An unranked vendor is inserted and everyone at or
    below the new rank moves down.

    Args:
        session: Database session
        vendor_slug: Vendor to re-rank
        priority: New rank, 1 is best
        resolver: Resolver whose cache should be cleared

    Returns:
        Updated vendor

    Raises:
        VendorNotFoundError: Unknown slug
        ValueError: Rank outside 1..N
        DuplicatePriorityError: A concurrent change took the rank first
    """
    if priority < MIN_PRIORITY:
        raise ValueError(f"priority must be >= {MIN_PRIORITY}, got {priority}")

    vendor = await get_vendor(session, vendor_slug)
    if vendor.priority == priority:
        return vendor

    result = await session.execute(
        select(Vendor)
        .where(Vendor.priority.is_not(None), Vendor.id != vendor.id)
        .order_by(Vendor.priority)
    )
    ranked = list(result.scalars().all())
    if priority > len(ranked) + 1:
        raise ValueError(f"priority must be between {MIN_PRIORITY} and {len(ranked) + 1}, got {priority}")

    ranked.insert(priority - 1, vendor)

    # Clear first so no intermediate state collides on the unique index
    for ranked_vendor in ranked:
        ranked_vendor.priority = None
    await session.flush()

    for rank, ranked_vendor in enumerate(ranked, start=1):
        ranked_vendor.priority = rank
    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        raise DuplicatePriorityError(f"priority {priority} is already assigned") from e

    logger.info(f"Vendor {vendor_slug} priority set to {priority}")
    if resolver is not None:
        await resolver.clear()
    return vendor


async def reorder_priorities(
    session: AsyncSession,
    ordered_slugs: list[str],
    resolver: Optional[PriorityResolver] = None,
) -> list[Vendor]:
    """
    Rewrite global ranks as 1..N in the given order.

    ordered_slugs must name every vendor exactly once.
    """
    if len(set(ordered_slugs)) != len(ordered_slugs):
        raise DuplicatePriorityError("vendor listed more than once")

    result = await session.execute(select(Vendor))
    vendors = {vendor.slug: vendor for vendor in result.scalars().all()}

    unknown = [slug for slug in ordered_slugs if slug not in vendors]
    if unknown:
        raise VendorNotFoundError(", ".join(unknown))
    missing = sorted(set(vendors) - set(ordered_slugs))
    if missing:
        raise ValueError(f"ordering must include every vendor, missing: {', '.join(missing)}")

    # Clear first so no intermediate state collides on the unique index
    for vendor in vendors.values():
        vendor.priority = None
    await session.flush()

    for rank, slug in enumerate(ordered_slugs, start=1):
        vendors[slug].priority = rank
    await session.commit()

    logger.info("Vendor priorities reordered: %s", ", ".join(ordered_slugs))
    if resolver is not None:
        await resolver.clear()
    return [vendors[slug] for slug in ordered_slugs]


async def assign_vertical_priority(
    session: AsyncSession,
    vendor_slug: str,
    retail_vertical_id: int,
    priority: int,
    resolver: Optional[PriorityResolver] = None,
) -> VendorVerticalRank:
    """Give a vendor a rank within one retail vertical."""
    if priority < MIN_PRIORITY:
        raise ValueError(f"priority must be >= {MIN_PRIORITY}, got {priority}")

    vendor = await get_vendor(session, vendor_slug)

    holder = await session.execute(
        select(VendorVerticalRank).where(
            VendorVerticalRank.retail_vertical_id == retail_vertical_id,
            VendorVerticalRank.priority == priority,
            VendorVerticalRank.vendor_id != vendor.id,
        )
    )
    if holder.scalar_one_or_none() is not None:
        raise DuplicatePriorityError(
            f"priority {priority} is already assigned in vertical {retail_vertical_id}"
        )

    result = await session.execute(
        select(VendorVerticalRank).where(
            VendorVerticalRank.vendor_id == vendor.id,
            VendorVerticalRank.retail_vertical_id == retail_vertical_id,
        )
    )
    rank = result.scalar_one_or_none()
    if rank is None:
        rank = VendorVerticalRank(vendor_id=vendor.id, retail_vertical_id=retail_vertical_id)
        session.add(rank)
    rank.priority = priority

    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        raise DuplicatePriorityError(
            f"priority {priority} is already assigned in vertical {retail_vertical_id}"
        ) from e

    logger.info(f"Vendor {vendor_slug} priority in vertical {retail_vertical_id} set to {priority}")
    if resolver is not None:
        await resolver.invalidate(vendor_slug)
    return rank
