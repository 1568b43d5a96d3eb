"""Canonical product lookup."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from catalog_sync.api.deps import get_database
from catalog_sync.db.models import Product
from catalog_sync.ingest.errors import CandidateError
from catalog_sync.reconcile.field_mapping import normalize_upc

router = APIRouter(prefix="/api/products", tags=["products"])


class VendorMappingResponse(BaseModel):
    vendor_slug: str
    company_id: Optional[int]
    vendor_sku: Optional[str]
    cost: Optional[Decimal]
    map_price: Optional[Decimal]
    msrp: Optional[Decimal]
    quantity: Optional[int]
    price_updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class ProductResponse(BaseModel):
    """Response model for a canonical product."""
    upc: str
    name: Optional[str]
    brand: Optional[str]
    model: Optional[str]
    manufacturer_part_number: Optional[str]
    description: Optional[str]
    caliber: Optional[str]
    barrel_length: Optional[str]
    category: Optional[str]
    subcategory1: Optional[str]
    subcategory2: Optional[str]
    subcategory3: Optional[str]
    specifications: Optional[dict]
    image_url: Optional[str]
    image_source: Optional[str]
    source: Optional[str]
    priority_source: Optional[str]
    priority_calculated_at: Optional[datetime]
    retail_vertical_id: Optional[int]
    status: str
    created_at: datetime
    updated_at: datetime
    vendor_mappings: List[VendorMappingResponse] = []

    class Config:
        from_attributes = True


@router.get("/{upc}", response_model=ProductResponse)
async def get_product(upc: str, db: AsyncSession = Depends(get_database)):
    """Look up a canonical product by UPC."""
    try:
        normalized = normalize_upc(upc)
    except CandidateError as e:
        raise HTTPException(status_code=400, detail=str(e))

    result = await db.execute(
        select(Product)
        .options(selectinload(Product.vendor_mappings))
        .where(Product.upc == normalized)
    )
    product = result.scalar_one_or_none()
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return product
