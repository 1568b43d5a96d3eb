"""Per-vendor field mapping table.

Each vendor maps its raw feed rows onto CandidateRecord attributes with a
primary source field, an ordered fallback chain, a quality tier and an
optional pure transform. Business exclusions are expressed as skip rules.
Everything vendor-specific about normalization lives here as data; the merge
engine never looks at vendor slugs beyond comparing them.
"""

import html
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional
from urllib.parse import quote_plus

from catalog_sync.ingest.errors import CandidateError
from catalog_sync.reconcile.types import CATEGORY_FIELDS, CandidateRecord, is_empty

logger = logging.getLogger(__name__)

UPC_LENGTH = 12

SPORTS_SOUTH_IMAGE_URL = "https://media.server.theshootingwarehouse.com/hires/{}.png"
LIPSEYS_IMAGE_URL = "https://www.lipseyscloud.com/images/{}"
BILL_HICKS_IMAGE_URL = "https://billhicksco.hostedftp.com/files/path/BHC+Digital+Images+ALL/Website/{}.jpg"


QUALITY_TIERS = ("high", "medium", "low")


@dataclass(frozen=True)
class FieldMapping:
    """
    Source of one canonical field.

    A low-tier mapping reads only its primary source; its fallbacks are
    never consulted.
    """

    primary: str
    fallbacks: tuple[str, ...] = ()
    quality: str = "medium"
    transform: Optional[Callable[[Any], Any]] = None

    def __post_init__(self):
        if self.quality not in QUALITY_TIERS:
            raise ValueError(f"quality must be one of {QUALITY_TIERS}, got {self.quality!r}")

    @property
    def sources(self) -> tuple[str, ...]:
        if self.quality == "low":
            return (self.primary,)
        return (self.primary, *self.fallbacks)

    def extract(self, row: dict) -> Any:
        """Return the first non-empty source value, transformed."""
        for key in self.sources:
            value = row.get(key)
            if isinstance(value, str):
                value = value.strip()
            if is_empty(value):
                continue
            if self.transform is not None:
                value = self.transform(value)
                if is_empty(value):
                    continue
            return value
        return None


@dataclass
class VendorFieldMapping:
    """Complete mapping rules for one vendor."""

    vendor_slug: str
    sku: FieldMapping
    upc: FieldMapping
    fields: dict[str, FieldMapping]
    # Single pipe-separated taxonomy path, used instead of per-level fields
    category_path: Optional[FieldMapping] = None
    # specifications key -> source field
    specification_fields: dict[str, str] = field(default_factory=dict)
    pricing: dict[str, FieldMapping] = field(default_factory=dict)
    image: Optional[Callable[[dict], Optional[str]]] = None
    # Composite name used when the name chain is empty
    name_builder: Optional[Callable[[dict], Optional[str]]] = None
    # Returns a reason when the row is excluded by vendor business rules
    skip_rule: Optional[Callable[[dict], Optional[str]]] = None
    modified_at: Optional[FieldMapping] = None


def normalize_upc(value: Any) -> str:
    """
    Normalize a raw UPC to its canonical form.

    Digit-only codes are left-padded with zeros to 12 digits so the same item
    reported with and without leading zeros lands on one record.

    Raises:
        CandidateError: Missing or unusable UPC
    """
    if value is None:
        raise CandidateError("missing UPC")

    upc = str(value).strip().replace(" ", "").replace("-", "")
    # Spreadsheet exports turn UPCs into floats
    if upc.endswith(".0") and upc[:-2].isdigit():
        upc = upc[:-2]

    if not upc:
        raise CandidateError("missing UPC")
    if not upc.isdigit():
        raise CandidateError(f"UPC {value!r} is not numeric")
    if len(upc) > 14:
        raise CandidateError(f"UPC {value!r} is too long")
    if set(upc) == {"0"}:
        raise CandidateError(f"UPC {value!r} is all zeros")

    return upc.zfill(UPC_LENGTH)


def parse_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    if isinstance(value, Decimal):
        return value
    text = str(value).strip().replace("$", "").replace(",", "")
    if not text:
        return None
    try:
        return Decimal(text)
    except InvalidOperation:
        raise CandidateError(f"invalid price {value!r}")


def parse_quantity(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(Decimal(str(value).strip()))
    except (InvalidOperation, ValueError):
        raise CandidateError(f"invalid quantity {value!r}")


def parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    for fmt in ("%Y-%m-%dT%H:%M:%S", "%Y-%m-%dT%H:%M:%S.%f", "%Y-%m-%d %H:%M:%S", "%m/%d/%Y %I:%M:%S %p", "%m/%d/%Y"):
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    logger.debug(f"Unparseable modification timestamp {value!r}")
    return None


def split_category_path(path: Optional[str]) -> dict[str, Optional[str]]:
    """Split 'A|B|C|D' into category + subcategory1..3."""
    levels: list[str] = []
    if path:
        levels = [part.strip() for part in html.unescape(path).split("|") if part.strip()]
    return {
        name: (levels[index] if index < len(levels) else None)
        for index, name in enumerate(CATEGORY_FIELDS)
    }


def _text(value: Any) -> str:
    return html.unescape(str(value)).strip()


def _barrel_length(value: Any) -> str:
    text = str(value).strip()
    # 4.0 -> 4
    if text.endswith(".0"):
        text = text[:-2]
    return text


def _after_first_word(value: str) -> str:
    parts = value.split()
    return " ".join(parts[1:]) if len(parts) >= 2 else value


def _join_nonempty(*parts: Any) -> Optional[str]:
    text = " ".join(str(part).strip() for part in parts if not is_empty(part))
    return text or None


# --- Lipsey's (REST/JSON) ---

def _lipseys_image(row: dict) -> Optional[str]:
    image_name = row.get("imageName")
    if is_empty(image_name):
        return None
    return LIPSEYS_IMAGE_URL.format(str(image_name).strip())


def _lipseys_name(row: dict) -> Optional[str]:
    return _join_nonempty(row.get("manufacturer"), row.get("model"))


# --- Sports South (SOAP/XML) ---

def _sports_south_image(row: dict) -> Optional[str]:
    identifier = row.get("PICREF") or row.get("ITEMNO")
    if is_empty(identifier):
        return None
    return SPORTS_SOUTH_IMAGE_URL.format(str(identifier).strip())


def _sports_south_name(row: dict) -> Optional[str]:
    model = row.get("IMODEL")
    if model == row.get("ITEMNO"):
        model = None
    return _join_nonempty(row.get("MFGR_NAME"), model, row.get("SERIES"))


def _sports_south_skip(row: dict) -> Optional[str]:
    if is_empty(row.get("ITEMNO")):
        return "missing ITEMNO"
    return None


# --- Bill Hicks (FTP/CSV) ---

def _bill_hicks_image(row: dict) -> Optional[str]:
    sku = row.get("product_name")
    if is_empty(sku):
        return None
    return BILL_HICKS_IMAGE_URL.format(quote_plus(str(sku).strip()))


# --- Chattanooga (REST/JSON) ---

def _chattanooga_skip(row: dict) -> Optional[str]:
    if is_empty(row.get("manufacturer")) and is_empty(row.get("Manufacturer")):
        return "missing manufacturer"
    return None


def _chattanooga_image(row: dict) -> Optional[str]:
    for key in ("image_location", "image_url", "imageUrl", "image"):
        value = row.get(key)
        if not is_empty(value) and str(value).startswith(("http://", "https://")):
            return str(value).strip()
    return None


VENDOR_FIELD_MAPPINGS: dict[str, VendorFieldMapping] = {
    "lipseys": VendorFieldMapping(
        vendor_slug="lipseys",
        sku=FieldMapping("itemNo", quality="high"),
        upc=FieldMapping("upc", quality="high"),
        fields={
            "name": FieldMapping("description1", ("description2",), "high", _text),
            "description": FieldMapping("description2", ("description1",), "medium", _text),
            "brand": FieldMapping("manufacturer", quality="high"),
            "model": FieldMapping("model", quality="high"),
            "manufacturer_part_number": FieldMapping("manufacturerModelNo", quality="high"),
            "caliber": FieldMapping("caliberGauge", quality="high"),
            "barrel_length": FieldMapping("barrelLength", quality="medium", transform=_barrel_length),
            "category": FieldMapping("type", quality="medium"),
            "subcategory1": FieldMapping("itemType", quality="medium"),
            "subcategory2": FieldMapping("action", quality="low"),
        },
        specification_fields={
            "caliber": "caliberGauge",
            "action": "action",
            "barrelLength": "barrelLength",
            "capacity": "capacity",
            "finish": "finish",
            "frame": "frame",
            "sights": "sightsType",
            "overallLength": "overallLength",
            "weight": "weight",
        },
        pricing={
            "cost": FieldMapping("price", quality="high"),
            "msrp": FieldMapping("msrp", quality="high"),
            "map_price": FieldMapping("retailMap", quality="high"),
            "quantity": FieldMapping("quantity", quality="high"),
        },
        image=_lipseys_image,
        name_builder=_lipseys_name,
    ),
    "sports-south": VendorFieldMapping(
        vendor_slug="sports-south",
        sku=FieldMapping("ITEMNO", quality="high"),
        upc=FieldMapping("ITUPC", ("UPC",), "high"),
        fields={
            "name": FieldMapping("TXTREF", ("IDESC",), "high", _text),
            "description": FieldMapping("IDESC", ("TXTREF",), "medium", _text),
            "brand": FieldMapping("MFGR_NAME", quality="high"),
            "model": FieldMapping("IMODEL", quality="medium"),
            "manufacturer_part_number": FieldMapping("MFGINO", quality="high"),
            "category": FieldMapping("CATDES", quality="medium"),
        },
        specification_fields={
            "series": "SERIES",
            "weight": "WTPBX",
        },
        pricing={
            "cost": FieldMapping("CPRC", quality="high"),
            "map_price": FieldMapping("MFPRC", quality="high"),
            "msrp": FieldMapping("PRC1", quality="medium"),
            "quantity": FieldMapping("QTYOH", quality="high"),
        },
        image=_sports_south_image,
        name_builder=_sports_south_name,
        skip_rule=_sports_south_skip,
    ),
    "bill-hicks": VendorFieldMapping(
        vendor_slug="bill-hicks",
        sku=FieldMapping("product_name", quality="high"),
        upc=FieldMapping("universal_product_code", quality="high"),
        fields={
            "name": FieldMapping("short_description", ("long_description", "product_name"), "high", _text),
            "description": FieldMapping("long_description", ("short_description",), "high", _text),
            "brand": FieldMapping("MFG_product", quality="high"),
            "manufacturer_part_number": FieldMapping("product_name", quality="medium", transform=_after_first_word),
            "category": FieldMapping("category_description", quality="medium"),
        },
        pricing={
            "cost": FieldMapping("product_price", quality="high"),
            "msrp": FieldMapping("msrp", quality="medium"),
        },
        image=_bill_hicks_image,
    ),
    "chattanooga": VendorFieldMapping(
        vendor_slug="chattanooga",
        sku=FieldMapping("cssi_id", ("SKU",), "high"),
        upc=FieldMapping("upc", ("UPC",), "high"),
        fields={
            "name": FieldMapping("Web Item Name", ("name", "Item Name"), "high", _text),
            "description": FieldMapping("Web Item Description", ("name",), "medium", _text),
            "brand": FieldMapping("manufacturer", ("Manufacturer",), "high"),
            "model": FieldMapping("model", quality="medium"),
            "manufacturer_part_number": FieldMapping(
                "Manufacturer Item Number", ("manufacturer_item_number",), "high"
            ),
        },
        category_path=FieldMapping("category", ("Category",), "medium"),
        pricing={
            "cost": FieldMapping("custom_price", ("price", "Price"), "high"),
            "map_price": FieldMapping("map_price", ("retail_map_price", "MAP"), "high"),
            "msrp": FieldMapping("msrp", ("retail_price", "MSRP"), "medium"),
            "quantity": FieldMapping("inventory", ("Qty On Hand",), "high"),
        },
        image=_chattanooga_image,
        name_builder=lambda row: _join_nonempty(row.get("manufacturer"), row.get("model")),
        skip_rule=_chattanooga_skip,
        modified_at=FieldMapping("updated_at", ("last_modified",), "medium"),
    ),
}


def get_vendor_field_mapping(vendor_slug: str) -> VendorFieldMapping:
    try:
        return VENDOR_FIELD_MAPPINGS[vendor_slug]
    except KeyError:
        raise KeyError(f"No field mapping for vendor {vendor_slug!r}")


def skip_reason(vendor_slug: str, row: dict) -> Optional[str]:
    """Reason the row is excluded for this vendor, or None."""
    mapping = get_vendor_field_mapping(vendor_slug)
    if mapping.skip_rule is None:
        return None
    return mapping.skip_rule(row)


def build_candidate(
    vendor_slug: str, row: dict, retail_vertical_id: Optional[int] = None
) -> CandidateRecord:
    """
    Map one raw feed row to a CandidateRecord.

    Args:
        vendor_slug: Vendor whose mapping applies
        row: Raw row (dict of source field -> value)
        retail_vertical_id: Vertical assigned to the vendor's products

    Returns:
        CandidateRecord

    Raises:
        CandidateError: Row cannot be mapped (bad UPC, bad price)
    """
    mapping = get_vendor_field_mapping(vendor_slug)

    upc = normalize_upc(mapping.upc.extract(row))

    values: dict[str, Any] = {}
    for attr, field_mapping in mapping.fields.items():
        values[attr] = field_mapping.extract(row)

    if values.get("name") is None and mapping.name_builder is not None:
        values["name"] = mapping.name_builder(row)

    if mapping.category_path is not None:
        values.update(split_category_path(mapping.category_path.extract(row)))

    specifications = {}
    for key, source in mapping.specification_fields.items():
        value = row.get(source)
        if isinstance(value, str):
            value = value.strip()
        if not is_empty(value):
            specifications[key] = value

    pricing = {attr: fm.extract(row) for attr, fm in mapping.pricing.items()}

    modified_at = None
    if mapping.modified_at is not None:
        raw_modified = mapping.modified_at.extract(row)
        if raw_modified is not None:
            modified_at = parse_timestamp(raw_modified)

    sku = mapping.sku.extract(row)

    return CandidateRecord(
        upc=upc,
        vendor_slug=vendor_slug,
        vendor_sku=str(sku) if sku is not None else None,
        specifications=specifications or None,
        image_url=mapping.image(row) if mapping.image else None,
        retail_vertical_id=retail_vertical_id,
        cost=parse_decimal(pricing.get("cost")),
        map_price=parse_decimal(pricing.get("map_price")),
        msrp=parse_decimal(pricing.get("msrp")),
        quantity=parse_quantity(pricing.get("quantity")),
        modified_at=modified_at,
        raw=dict(row),
        **{attr: _as_text(value) for attr, value in values.items()},
    )


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)
