#!/usr/bin/env python3
"""
Diagnose sync run state and provide recovery recommendations.

Usage:
    python scripts/diagnose_sync_runs.py
    python scripts/diagnose_sync_runs.py --recover
"""

import asyncio
from datetime import datetime
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from catalog_sync.config import settings
from catalog_sync.db.models import SyncRun, Vendor
from catalog_sync.db.session import AsyncSessionLocal
from catalog_sync.worker.sync_watchdog import recover_stale_runs


async def diagnose() -> int:
    now = datetime.utcnow()
    stale_after = settings.sync_stale_after_seconds

    print("Sync Run Diagnosis")
    print("==================")
    print(f"Stale threshold (seconds): {stale_after}")
    print("")

    async with AsyncSessionLocal() as db:
        result = await db.execute(
            select(SyncRun).where(SyncRun.status == "in_progress").order_by(SyncRun.started_at)
        )
        live_runs = result.scalars().all()

        vendors = (await db.execute(select(Vendor).order_by(Vendor.slug))).scalars().all()

        latest = {}
        for vendor in vendors:
            run_result = await db.execute(
                select(SyncRun)
                .where(SyncRun.vendor_slug == vendor.slug)
                .order_by(SyncRun.started_at.desc())
                .limit(1)
            )
            latest[vendor.slug] = run_result.scalar_one_or_none()

    stale_count = 0
    if not live_runs:
        print("In-progress runs: none")
    else:
        print(f"In-progress runs: {len(live_runs)}")
        for run in live_runs:
            age_s = (now - run.started_at).total_seconds()
            stale = age_s > stale_after
            stale_count += stale
            print(
                f"  - id={run.id} vendor={run.vendor_slug} mode={run.mode} trigger={run.trigger} "
                f"age_s={age_s:.0f} processed={run.processed_count}/{run.total_records}"
                f"{' STALE' if stale else ''}"
            )

    print("")
    print("Latest run per vendor")
    print("---------------------")
    for slug, run in latest.items():
        if run is None:
            print(f"  {slug:<16} never synced")
            continue
        detail = f" ({run.error_kind}: {run.error_message})" if run.status == "error" else ""
        print(
            f"  {slug:<16} {run.status:<12} started={run.started_at:%Y-%m-%d %H:%M} "
            f"new={run.created_count} updated={run.updated_count} failed={run.failed_count}{detail}"
        )

    print("")
    print("Recommendations")
    print("----------------")
    if stale_count:
        print(f"- {stale_count} run(s) exceed the stale threshold. Run with --recover to close them.")
        print("  The next pass for the vendor also closes them automatically.")
    elif live_runs:
        print("- In-progress runs are within the threshold. Wait for them to finish.")
    else:
        print("- No action needed.")

    return stale_count


async def recover() -> None:
    recovered = await recover_stale_runs(reason_prefix="Manual recovery")
    print(f"Recovered {recovered} stale run(s)")


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "--recover":
        asyncio.run(recover())
    else:
        asyncio.run(diagnose())
