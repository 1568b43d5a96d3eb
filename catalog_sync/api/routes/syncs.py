"""Sync run routes."""

from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.api.deps import get_database, get_orchestrator, require_admin_api_key
from catalog_sync.db.models import SyncRun
from catalog_sync.reconcile.ranking import VendorNotFoundError
from catalog_sync.worker.orchestrator import (
    MissingCredentialsError,
    SyncAlreadyRunningError,
    SyncOrchestrator,
    VendorDisabledError,
)
from catalog_sync.worker.tasks import TaskRunner

router = APIRouter(prefix="/api/syncs", tags=["syncs"])


class SyncRunResponse(BaseModel):
    id: int
    vendor_slug: str
    mode: str
    trigger: str
    company_id: Optional[int]
    status: str
    total_records: int
    created_count: int
    updated_count: int
    unchanged_count: int
    skipped_count: int
    failed_count: int
    processed_count: int
    images_added: int
    images_upgraded: int
    started_at: datetime
    finished_at: Optional[datetime]
    error_kind: Optional[str]
    error_message: Optional[str]

    class Config:
        from_attributes = True


class QueueStatusResponse(BaseModel):
    queue_length: int
    running: int
    max_concurrent: int


@router.get("", response_model=List[SyncRunResponse])
async def list_sync_runs(
    vendor_slug: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_database),
):
    """List sync runs, newest first."""
    query = select(SyncRun)
    if vendor_slug:
        query = query.where(SyncRun.vendor_slug == vendor_slug)
    if status:
        query = query.where(SyncRun.status == status)
    query = query.order_by(SyncRun.started_at.desc(), SyncRun.id.desc()).limit(limit)

    result = await db.execute(query)
    return result.scalars().all()


@router.get("/queue", response_model=QueueStatusResponse)
async def get_queue_status(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Current state of the outbound vendor request queue."""
    return orchestrator.queue.status().to_dict()


@router.get("/{vendor_slug}/latest", response_model=SyncRunResponse)
async def get_latest_sync_run(vendor_slug: str, db: AsyncSession = Depends(get_database)):
    """Most recent run for a vendor."""
    result = await db.execute(
        select(SyncRun)
        .where(SyncRun.vendor_slug == vendor_slug)
        .order_by(SyncRun.started_at.desc(), SyncRun.id.desc())
        .limit(1)
    )
    run = result.scalar_one_or_none()
    if run is None:
        raise HTTPException(status_code=404, detail="No sync runs for vendor")
    return run


@router.post("/{vendor_slug}", status_code=202)
async def trigger_sync(
    vendor_slug: str,
    background_tasks: BackgroundTasks,
    mode: Literal["full", "incremental"] = "incremental",
    company_id: Optional[int] = None,
    wait: bool = False,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
    _admin: None = Depends(require_admin_api_key),
):
    """
    Trigger a sync pass for a vendor.

    By default the pass runs in the background and the response only confirms
    it was accepted. With wait=true the pass runs inline and its statistics
    are returned.
    """
    try:
        if wait:
            stats = await orchestrator.run_sync_pass(
                vendor_slug, mode=mode, trigger="manual", company_id=company_id
            )
            return {"message": f"Sync finished: {stats.status}", "queued": False, "run": stats.to_dict()}

        await orchestrator.preflight(vendor_slug, company_id)
    except SyncAlreadyRunningError as e:
        raise HTTPException(
            status_code=409,
            detail={"message": str(e), "run_id": e.run_id},
        )
    except VendorNotFoundError:
        raise HTTPException(status_code=404, detail="Vendor not found")
    except (VendorDisabledError, MissingCredentialsError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    background_tasks.add_task(
        TaskRunner(orchestrator).sync_vendor,
        vendor_slug,
        mode=mode,
        trigger="manual",
        company_id=company_id,
    )

    return {
        "message": f"Sync triggered for vendor: {vendor_slug}",
        "queued": True,
        "vendor_slug": vendor_slug,
        "mode": mode,
    }
