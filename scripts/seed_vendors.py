#!/usr/bin/env python3
"""
Vendor seeding script.

Creates the supported vendors with their default ranks and image quality tiers.
Existing vendors are left untouched unless --reset-priorities is given, in
which case global ranks are rewritten in the default order.

Usage:
    python scripts/seed_vendors.py
    python scripts/seed_vendors.py --list
    python scripts/seed_vendors.py --reset-priorities
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from catalog_sync.db.models import Base, Vendor
from catalog_sync.db.session import AsyncSessionLocal, engine
from catalog_sync.reconcile.ranking import reorder_priorities

# Default order is the default global rank (first = 1)
DEFAULT_VENDORS = [
    {
        "slug": "sports-south",
        "display_name": "Sports South",
        "short_code": "sports-south",
        "image_quality": "high",
        "transport": "soap_xml",
    },
    {
        "slug": "chattanooga",
        "display_name": "Chattanooga Shooting Supplies Inc.",
        "short_code": "chattanooga",
        "image_quality": "low",
        "transport": "rest_json",
    },
    {
        "slug": "bill-hicks",
        "display_name": "Bill Hicks & Co.",
        "short_code": "bill-hicks",
        "image_quality": "high",
        "transport": "ftp_csv",
    },
    {
        "slug": "lipseys",
        "display_name": "Lipsey's Inc.",
        "short_code": "lipseys",
        "image_quality": "high",
        "transport": "rest_json",
    },
]


async def seed_vendors() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        result = await db.execute(select(Vendor))
        existing = {vendor.slug: vendor for vendor in result.scalars().all()}
        taken = {vendor.priority for vendor in existing.values() if vendor.priority is not None}

        created = 0
        for rank, data in enumerate(DEFAULT_VENDORS, start=1):
            if data["slug"] in existing:
                print(f"  = {data['slug']} (exists, priority {existing[data['slug']].priority})")
                continue

            # Leave the vendor unranked if its default rank is already held
            priority = rank if rank not in taken else None
            db.add(Vendor(priority=priority, enabled=True, **data))
            created += 1
            print(f"  + {data['slug']} (priority {priority})")

        await db.commit()

    print(f"\nCreated {created} vendors")


async def reset_priorities() -> None:
    async with AsyncSessionLocal() as db:
        result = await db.execute(select(Vendor.slug))
        slugs = set(result.scalars().all())

        defaults = [data["slug"] for data in DEFAULT_VENDORS if data["slug"] in slugs]
        extra = sorted(slugs - set(defaults))
        vendors = await reorder_priorities(db, defaults + extra)

    for vendor in vendors:
        print(f"  {vendor.priority:>3}  {vendor.slug}")


async def list_vendors() -> None:
    async with AsyncSessionLocal() as db:
        result = await db.execute(select(Vendor).order_by(Vendor.priority.is_(None), Vendor.priority))
        vendors = result.scalars().all()

    if not vendors:
        print("No vendors configured")
        return

    print(f"{'PRI':>4}  {'SLUG':<16} {'IMAGES':<7} {'TRANSPORT':<10} ENABLED")
    for vendor in vendors:
        priority = vendor.priority if vendor.priority is not None else "-"
        print(
            f"{priority:>4}  {vendor.slug:<16} {vendor.image_quality or '-':<7} "
            f"{vendor.transport:<10} {vendor.enabled}"
        )


if __name__ == "__main__":
    if len(sys.argv) > 1:
        if sys.argv[1] == "--list":
            asyncio.run(list_vendors())
        elif sys.argv[1] == "--reset-priorities":
            asyncio.run(reset_priorities())
        else:
            print(f"Unknown option: {sys.argv[1]}")
            print("Usage: python scripts/seed_vendors.py [--list|--reset-priorities]")
            sys.exit(1)
    else:
        asyncio.run(seed_vendors())
