"""SQLAlchemy database models."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from catalog_sync.db.encryption import EncryptedString

# JSONB on PostgreSQL, plain JSON elsewhere (tests run on SQLite)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Vendor(Base):
    """A supported catalog vendor.

    The slug is the only identity used in logic. display_name and short_code
    are for presentation.
    """

    __tablename__ = "vendors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slug: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(128), nullable=False)
    short_code: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    # Global rank, lower wins. NULL means unranked.
    priority: Mapped[Optional[int]] = mapped_column(Integer, unique=True, nullable=True)
    image_quality: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)  # 'high' | 'low'
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    transport: Mapped[str] = mapped_column(String(16), nullable=False)  # rest_json, soap_xml, ftp_csv
    # Vertical assigned to products this vendor creates
    default_retail_vertical_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    vertical_ranks: Mapped[list["VendorVerticalRank"]] = relationship(
        "VendorVerticalRank", back_populates="vendor", cascade="all, delete-orphan"
    )


class VendorVerticalRank(Base):
    """Vendor rank within one retail vertical."""

    __tablename__ = "vendor_vertical_ranks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    vendor_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False
    )
    retail_vertical_id: Mapped[int] = mapped_column(Integer, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False)

    vendor: Mapped["Vendor"] = relationship("Vendor", back_populates="vertical_ranks")

    __table_args__ = (
        UniqueConstraint("vendor_id", "retail_vertical_id", name="uq_vertical_rank_vendor"),
        UniqueConstraint("retail_vertical_id", "priority", name="uq_vertical_rank_priority"),
    )


class Product(Base):
    """Canonical product, one row per UPC."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    upc: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    brand: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    model: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    manufacturer_part_number: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    caliber: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    barrel_length: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Taxonomy, written as one group
    category: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    subcategory1: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    subcategory2: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    subcategory3: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    specifications: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_source: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)  # vendor slug

    # Audit trail
    source: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)  # creating vendor slug
    priority_source: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    priority_calculated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    retail_vertical_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    status: Mapped[str] = mapped_column(String(16), default="active", nullable=False)  # active, archived

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    vendor_mappings: Mapped[list["VendorProductMapping"]] = relationship(
        "VendorProductMapping", back_populates="product"
    )


class VendorProductMapping(Base):
    """Vendor SKU and cached pricing for a product, optionally per company."""

    __tablename__ = "vendor_product_mappings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id"), nullable=False
    )
    vendor_slug: Mapped[str] = mapped_column(
        String(64), ForeignKey("vendors.slug"), nullable=False
    )
    company_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    vendor_sku: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    map_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    msrp: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    quantity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    price_updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    last_seen_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    product: Mapped["Product"] = relationship("Product", back_populates="vendor_mappings")

    __table_args__ = (
        UniqueConstraint(
            "product_id", "vendor_slug", "company_id", name="uq_vendor_mapping_product_vendor_company"
        ),
    )


class SyncRun(Base):
    """Statistics and status of one vendor sync pass."""

    __tablename__ = "sync_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    vendor_slug: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    mode: Mapped[str] = mapped_column(String(16), default="full", nullable=False)  # full, incremental
    trigger: Mapped[str] = mapped_column(String(16), default="manual", nullable=False)  # scheduled, manual
    company_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="in_progress", nullable=False)  # in_progress, success, error

    # Differential counts
    total_records: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    unchanged_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skipped_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    images_added: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    images_upgraded: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    started_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    error_kind: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        # At most one live pass per vendor
        Index(
            "uq_sync_runs_one_in_progress",
            "vendor_slug",
            unique=True,
            postgresql_where=text("status = 'in_progress'"),
            sqlite_where=text("status = 'in_progress'"),
        ),
    )

    @property
    def processed_count(self) -> int:
        return (
            self.created_count
            + self.updated_count
            + self.unchanged_count
            + self.skipped_count
            + self.failed_count
        )


class VendorCredential(Base):
    """Encrypted vendor credentials, optionally per company."""

    __tablename__ = "vendor_credentials"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    vendor_slug: Mapped[str] = mapped_column(
        String(64), ForeignKey("vendors.slug", ondelete="CASCADE"), nullable=False
    )
    company_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    # JSON document, encrypted at rest
    secret: Mapped[Optional[str]] = mapped_column(EncryptedString(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("vendor_slug", "company_id", name="uq_vendor_credential_vendor_company"),
    )
