"""Vendor ranking and connection routes."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.api.deps import get_database, get_orchestrator, require_admin_api_key
from catalog_sync.db.models import Vendor
from catalog_sync.reconcile.ranking import (
    DuplicatePriorityError,
    VendorNotFoundError,
    assign_priority,
    reorder_priorities,
)
from catalog_sync.worker.orchestrator import SyncOrchestrator

router = APIRouter(prefix="/api/vendors", tags=["vendors"])


class VendorResponse(BaseModel):
    slug: str
    display_name: str
    short_code: str | None
    priority: int | None
    image_quality: str | None
    enabled: bool
    transport: str
    default_retail_vertical_id: int | None

    class Config:
        from_attributes = True


class PriorityUpdate(BaseModel):
    priority: int = Field(..., ge=1)


class PriorityReorder(BaseModel):
    vendors: List[str]


class ConnectionTestRequest(BaseModel):
    credentials: dict | None = None
    company_id: int | None = None


class ConnectionTestResponse(BaseModel):
    success: bool
    message: str
    error_kind: str | None = None


@router.get("", response_model=List[VendorResponse])
async def list_vendors(db: AsyncSession = Depends(get_database)):
    """List vendors, best rank first. Unranked vendors come last."""
    result = await db.execute(
        select(Vendor).order_by(Vendor.priority.is_(None), Vendor.priority.asc(), Vendor.slug.asc())
    )
    return result.scalars().all()


@router.put("/priorities", response_model=List[VendorResponse])
async def reorder_vendor_priorities(
    body: PriorityReorder,
    db: AsyncSession = Depends(get_database),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
    _admin: None = Depends(require_admin_api_key),
):
    """Rewrite all global ranks as 1..N in the given order."""
    try:
        return await reorder_priorities(db, body.vendors, orchestrator.resolver)
    except VendorNotFoundError as e:
        raise HTTPException(status_code=404, detail=f"Unknown vendor: {e}")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.put("/{vendor_slug}/priority", response_model=VendorResponse)
async def update_vendor_priority(
    vendor_slug: str,
    body: PriorityUpdate,
    db: AsyncSession = Depends(get_database),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
    _admin: None = Depends(require_admin_api_key),
):
    """Move a vendor to a global rank, shifting the vendors in between."""
    try:
        return await assign_priority(db, vendor_slug, body.priority, orchestrator.resolver)
    except VendorNotFoundError:
        raise HTTPException(status_code=404, detail="Vendor not found")
    except DuplicatePriorityError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{vendor_slug}/test-connection", response_model=ConnectionTestResponse)
async def test_vendor_connection(
    vendor_slug: str,
    body: ConnectionTestRequest | None = None,
    db: AsyncSession = Depends(get_database),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
    _admin: None = Depends(require_admin_api_key),
):
    """
    Check vendor credentials.

    Uses the credentials in the body when given, stored credentials otherwise.
    """
    result = await db.execute(select(Vendor.id).where(Vendor.slug == vendor_slug))
    if result.scalar_one_or_none() is None:
        raise HTTPException(status_code=404, detail="Vendor not found")

    body = body or ConnectionTestRequest()
    outcome = await orchestrator.test_connection(
        vendor_slug, credentials=body.credentials, company_id=body.company_id
    )
    return ConnectionTestResponse(
        success=outcome.success, message=outcome.message, error_kind=outcome.error_kind
    )
