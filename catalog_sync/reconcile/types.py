"""Record types shared by the reconciliation core."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional


# Rank given to vendors with no rank on record. Loses to every ranked vendor.
DEFAULT_PRIORITY = 999


class ImageQuality(str, Enum):
    """Coarse quality tier of a vendor's photography."""

    HIGH = "high"
    LOW = "low"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["ImageQuality"]:
        """Parse a stored tier; unknown or empty values give None."""
        if not value:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


class MergeOutcome(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    NO_CHANGE = "no_change"


# Set only while empty on the existing record
FILL_ONLY_FIELDS = (
    "description",
    "manufacturer_part_number",
    "brand",
    "model",
    "caliber",
    "barrel_length",
    "specifications",
)

# Written together or not at all
CATEGORY_FIELDS = ("category", "subcategory1", "subcategory2", "subcategory3")

# Decided by vendor priority
PRIORITY_FIELDS = ("name",)


def is_empty(value: Any) -> bool:
    """None, blank strings and empty containers count as empty."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (dict, list, tuple)):
        return len(value) == 0
    return False


@dataclass
class CandidateRecord:
    """One vendor's proposed data for a UPC in one sync pass."""

    upc: str
    vendor_slug: str
    vendor_sku: Optional[str] = None

    name: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    manufacturer_part_number: Optional[str] = None
    description: Optional[str] = None
    caliber: Optional[str] = None
    barrel_length: Optional[str] = None
    category: Optional[str] = None
    subcategory1: Optional[str] = None
    subcategory2: Optional[str] = None
    subcategory3: Optional[str] = None
    specifications: Optional[dict] = None
    image_url: Optional[str] = None
    retail_vertical_id: Optional[int] = None

    # Pricing snapshot, cached on the vendor mapping only
    cost: Optional[Decimal] = None
    map_price: Optional[Decimal] = None
    msrp: Optional[Decimal] = None
    quantity: Optional[int] = None

    # Vendor-side change time, when the feed reports one
    modified_at: Optional[datetime] = None

    # Source row, kept for failure logs
    raw: dict = field(default_factory=dict, repr=False)

    @property
    def has_pricing(self) -> bool:
        return any(
            value is not None for value in (self.cost, self.map_price, self.msrp, self.quantity)
        )


@dataclass
class MergeContext:
    """Priorities and image tiers resolved before a merge."""

    candidate_priority: int
    existing_priority: Optional[int] = None  # priority of existing.priority_source
    candidate_image_quality: Optional[ImageQuality] = None
    existing_image_quality: Optional[ImageQuality] = None  # tier of existing.image_source
    now: Optional[datetime] = None


@dataclass
class MergeResult:
    """Outcome of merging one candidate.

    changes maps product attribute names to their new values. It holds the
    full record for INSERT and is empty for NO_CHANGE.
    """

    outcome: MergeOutcome
    changes: dict[str, Any] = field(default_factory=dict)
    image_change: Optional[str] = None  # 'added' | 'upgraded'

    @property
    def changed_fields(self) -> list[str]:
        return sorted(self.changes)
