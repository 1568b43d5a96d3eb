"""Tests for the per-vendor field mapping table."""

from decimal import Decimal

import pytest

from catalog_sync.ingest.errors import CandidateError
from catalog_sync.reconcile.field_mapping import (
    FieldMapping,
    build_candidate,
    normalize_upc,
    parse_decimal,
    skip_reason,
    split_category_path,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("000111222333", "000111222333"),
        ("111222333", "000111222333"),
        (" 0-11122-23334 ", "001112223334"),
        ("764503037108.0", "764503037108"),
        (764503037108, "764503037108"),
        ("00764503037108", "00764503037108"),
    ],
)
def test_normalize_upc(raw, expected):
    assert normalize_upc(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "   ", "ABC123", "0000000", "123456789012345"])
def test_normalize_upc_rejects(raw):
    with pytest.raises(CandidateError):
        normalize_upc(raw)


def test_field_mapping_fallback_chain():
    mapping = FieldMapping("primary", ("second", "third"))
    assert mapping.extract({"primary": "  ", "second": None, "third": "value"}) == "value"
    assert mapping.extract({"primary": "first", "third": "value"}) == "first"
    assert mapping.extract({}) is None


def test_field_mapping_transform_result_can_be_empty():
    mapping = FieldMapping("a", ("b",), transform=lambda value: value.replace("-", ""))
    assert mapping.extract({"a": "---", "b": "x"}) == "x"


def test_low_quality_mapping_ignores_fallbacks():
    mapping = FieldMapping("action", ("legacy_action",), quality="low")
    assert mapping.extract({"action": "Striker", "legacy_action": "Hammer"}) == "Striker"
    assert mapping.extract({"action": "", "legacy_action": "Hammer"}) is None
    assert FieldMapping("action", ("legacy_action",), quality="high").extract({"legacy_action": "Hammer"}) == "Hammer"


def test_field_mapping_rejects_unknown_quality():
    with pytest.raises(ValueError):
        FieldMapping("upc", quality="excellent")


def test_split_category_path():
    assert split_category_path("Firearms|Handguns|Semi-Auto") == {
        "category": "Firearms",
        "subcategory1": "Handguns",
        "subcategory2": "Semi-Auto",
        "subcategory3": None,
    }
    assert split_category_path("Optics &amp; Sights|| Scopes ")["subcategory1"] == "Scopes"
    assert split_category_path(None)["category"] is None


def test_parse_decimal():
    assert parse_decimal("$1,299.99") == Decimal("1299.99")
    assert parse_decimal(12.5) == Decimal("12.5")
    assert parse_decimal("") is None
    with pytest.raises(CandidateError):
        parse_decimal("call for price")


def test_lipseys_row():
    row = {
        "itemNo": "GLPA195S203",
        "upc": "764503037108",
        "description1": "G19 GEN5 9MM 15RD FS",
        "description2": "Glock 19 Gen 5 with front serrations",
        "manufacturer": "Glock",
        "model": "G19 Gen5",
        "manufacturerModelNo": "PA195S203",
        "caliberGauge": "9mm Luger",
        "barrelLength": "4.0",
        "type": "Pistol",
        "itemType": "Firearm",
        "action": "Semi-Auto",
        "capacity": "15",
        "price": "499.00",
        "msrp": "649.99",
        "retailMap": "559.00",
        "quantity": "12",
        "imageName": "PA195S203.jpg",
    }

    candidate = build_candidate("lipseys", row, retail_vertical_id=1)

    assert candidate.upc == "764503037108"
    assert candidate.vendor_slug == "lipseys"
    assert candidate.vendor_sku == "GLPA195S203"
    assert candidate.name == "G19 GEN5 9MM 15RD FS"
    assert candidate.description == "Glock 19 Gen 5 with front serrations"
    assert candidate.brand == "Glock"
    assert candidate.barrel_length == "4"
    assert candidate.category == "Pistol"
    assert candidate.subcategory1 == "Firearm"
    assert candidate.specifications["capacity"] == "15"
    assert candidate.cost == Decimal("499.00")
    assert candidate.map_price == Decimal("559.00")
    assert candidate.quantity == 12
    assert candidate.image_url == "https://www.lipseyscloud.com/images/PA195S203.jpg"
    assert candidate.retail_vertical_id == 1
    assert candidate.raw["itemNo"] == "GLPA195S203"


def test_lipseys_name_built_when_descriptions_missing():
    row = {"itemNo": "X1", "upc": "764503037108", "manufacturer": "Glock", "model": "G17"}
    assert build_candidate("lipseys", row).name == "Glock G17"


def test_sports_south_row():
    row = {
        "ITEMNO": "12345",
        "ITUPC": "723189045227",
        "IDESC": "S&amp;W M&amp;P9 SHIELD PLUS",
        "TXTREF": "",
        "MFGR_NAME": "Smith & Wesson",
        "IMODEL": "M&P9 Shield Plus",
        "MFGINO": "13242",
        "CATDES": "Pistols",
        "CPRC": "389.50",
        "QTYOH": "4",
        "PICREF": "12345",
    }

    candidate = build_candidate("sports-south", row)

    assert candidate.name == "S&W M&P9 SHIELD PLUS"
    assert candidate.brand == "Smith & Wesson"
    assert candidate.category == "Pistols"
    assert candidate.cost == Decimal("389.50")
    assert candidate.image_url == "https://media.server.theshootingwarehouse.com/hires/12345.png"


def test_sports_south_skips_rows_without_item_number():
    assert skip_reason("sports-south", {"ITUPC": "723189045227"}) == "missing ITEMNO"
    assert skip_reason("sports-south", {"ITEMNO": "1", "ITUPC": "723189045227"}) is None


def test_bill_hicks_row():
    row = {
        "product_name": "GLOCK PA175S203",
        "universal_product_code": "764503022616",
        "short_description": "G17 GEN5 9MM",
        "long_description": "Glock 17 Gen5 9mm pistol",
        "MFG_product": "Glock",
        "category_description": "Handguns",
        "product_price": "480.25",
        "msrp": "",
    }

    candidate = build_candidate("bill-hicks", row)

    assert candidate.vendor_sku == "GLOCK PA175S203"
    assert candidate.manufacturer_part_number == "PA175S203"
    assert candidate.brand == "Glock"
    assert candidate.msrp is None
    assert candidate.image_url.endswith("/GLOCK+PA175S203.jpg")


def test_chattanooga_row_with_category_path():
    row = {
        "cssi_id": "GL1950203",
        "upc": "764503037108",
        "name": "Glock 19 Gen5 9mm",
        "manufacturer": "Glock",
        "category": "Firearms|Handguns|Semi-Auto",
        "custom_price": 505.1,
        "map_price": 559,
        "inventory": 7,
        "image_location": "https://images.example.com/GL1950203.jpg",
        "updated_at": "2026-03-01T10:15:00",
    }

    candidate = build_candidate("chattanooga", row)

    assert candidate.name == "Glock 19 Gen5 9mm"
    assert candidate.category == "Firearms"
    assert candidate.subcategory2 == "Semi-Auto"
    assert candidate.cost == Decimal("505.1")
    assert candidate.quantity == 7
    assert candidate.image_url == "https://images.example.com/GL1950203.jpg"
    assert candidate.modified_at.year == 2026


def test_chattanooga_modified_at_falls_back_to_last_modified():
    row = {
        "cssi_id": "GL1950203",
        "upc": "764503037108",
        "manufacturer": "Glock",
        "last_modified": "2026-02-01T08:00:00",
    }

    assert build_candidate("chattanooga", row).modified_at.month == 2


def test_chattanooga_skips_rows_without_manufacturer():
    assert skip_reason("chattanooga", {"upc": "764503037108"}) == "missing manufacturer"


def test_bad_upc_raises_candidate_error():
    with pytest.raises(CandidateError):
        build_candidate("lipseys", {"itemNo": "X", "upc": "N/A"})


def test_bad_price_raises_candidate_error():
    with pytest.raises(CandidateError):
        build_candidate("lipseys", {"itemNo": "X", "upc": "764503037108", "price": "TBD"})
