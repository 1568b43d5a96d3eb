"""Tests for the field-level merge engine."""

from datetime import datetime
from types import SimpleNamespace

import pytest

from catalog_sync.reconcile.merge import IdentityMismatchError, apply_merge, merge
from catalog_sync.reconcile.types import (
    CATEGORY_FIELDS,
    FILL_ONLY_FIELDS,
    CandidateRecord,
    ImageQuality,
    MergeContext,
    MergeOutcome,
)

NOW = datetime(2026, 1, 15, 12, 0, 0)


def product(**values):
    """Stand-in for a Product row with every mergeable attribute."""
    fields = dict.fromkeys(
        FILL_ONLY_FIELDS + CATEGORY_FIELDS
        + ("name", "image_url", "image_source", "source", "priority_source",
           "priority_calculated_at", "retail_vertical_id"),
    )
    fields.update(upc="000111222333", status="active")
    fields.update(values)
    return SimpleNamespace(**fields)


def context(candidate_priority=5, existing_priority=None, candidate_quality=None, existing_quality=None):
    return MergeContext(
        candidate_priority=candidate_priority,
        existing_priority=existing_priority,
        candidate_image_quality=candidate_quality,
        existing_image_quality=existing_quality,
        now=NOW,
    )


def test_insert_builds_full_record():
    candidate = CandidateRecord(
        upc="000111222333",
        vendor_slug="lipseys",
        name="Glock 19 Gen5",
        brand="Glock",
        description="",
        category="Handguns",
        subcategory1="Semi-Auto",
        image_url="a.jpg",
        retail_vertical_id=1,
    )

    result = merge(None, candidate, context(candidate_quality=ImageQuality.HIGH))

    assert result.outcome == MergeOutcome.INSERT
    assert result.changes["upc"] == "000111222333"
    assert result.changes["source"] == "lipseys"
    assert result.changes["brand"] == "Glock"
    assert "description" not in result.changes
    assert result.changes["category"] == "Handguns"
    assert result.changes["subcategory1"] == "Semi-Auto"
    assert result.changes["name"] == "Glock 19 Gen5"
    assert result.changes["priority_source"] == "lipseys"
    assert result.changes["priority_calculated_at"] == NOW
    assert result.changes["image_url"] == "a.jpg"
    assert result.changes["image_source"] == "lipseys"
    assert result.changes["retail_vertical_id"] == 1
    assert result.image_change == "added"


def test_insert_drops_subcategories_without_category():
    candidate = CandidateRecord(upc="000111222333", vendor_slug="a", subcategory1="Semi-Auto")
    result = merge(None, candidate, context())
    assert "subcategory1" not in result.changes


def test_fill_only_fields_never_overwritten():
    existing = product(brand="Glock", model="19", description="Hand-corrected description")
    candidate = CandidateRecord(
        upc="000111222333",
        vendor_slug="sports-south",
        brand="GLOCK INC",
        model="G19",
        description="Vendor description",
        caliber="9mm",
    )

    # Even the best-ranked vendor cannot overwrite
    result = merge(existing, candidate, context(candidate_priority=1, existing_priority=50))

    assert result.outcome == MergeOutcome.UPDATE
    assert result.changes == {"caliber": "9mm"}


def test_fill_only_treats_blank_string_as_empty():
    existing = product(description="   ")
    candidate = CandidateRecord(upc="000111222333", vendor_slug="a", description="Filled")
    result = merge(existing, candidate, context())
    assert result.changes["description"] == "Filled"


def test_specifications_filled_only_when_empty():
    existing = product(specifications={"capacity": "15"})
    candidate = CandidateRecord(upc="000111222333", vendor_slug="a", specifications={"capacity": "17"})
    assert merge(existing, candidate, context()).outcome == MergeOutcome.NO_CHANGE

    existing = product(specifications={})
    result = merge(existing, candidate, context())
    assert result.changes["specifications"] == {"capacity": "17"}


def test_category_group_written_when_all_empty():
    existing = product()
    candidate = CandidateRecord(
        upc="000111222333",
        vendor_slug="a",
        category="Long Guns",
        subcategory1="Rifles",
        subcategory2="Bolt Action",
        subcategory3="Hunting",
    )

    result = merge(existing, candidate, context())

    assert {name: result.changes[name] for name in CATEGORY_FIELDS} == {
        "category": "Long Guns",
        "subcategory1": "Rifles",
        "subcategory2": "Bolt Action",
        "subcategory3": "Hunting",
    }


def test_category_group_not_partially_filled():
    existing = product(category="Handguns")
    candidate = CandidateRecord(
        upc="000111222333",
        vendor_slug="a",
        category="Pistols",
        subcategory1="Semi-Auto",
    )

    result = merge(existing, candidate, context())

    assert result.outcome == MergeOutcome.NO_CHANGE


def test_category_group_blocked_by_any_subcategory():
    existing = product(subcategory2="Compact")
    candidate = CandidateRecord(upc="000111222333", vendor_slug="a", category="Handguns")
    assert merge(existing, candidate, context()).outcome == MergeOutcome.NO_CHANGE


def test_subcategories_without_parent_are_ignored():
    existing = product()
    candidate = CandidateRecord(upc="000111222333", vendor_slug="a", subcategory1="Rifles")
    assert merge(existing, candidate, context()).outcome == MergeOutcome.NO_CHANGE


def test_source_never_changes():
    existing = product(source="chattanooga", description="x")
    candidate = CandidateRecord(upc="000111222333", vendor_slug="lipseys", brand="Glock")
    result = merge(existing, candidate, context())
    assert "source" not in result.changes


def test_image_upgrade_low_to_high():
    existing = product(image_url="a.jpg", image_source="chattanooga")
    candidate = CandidateRecord(upc="000111222333", vendor_slug="lipseys", image_url="b.jpg")

    result = merge(
        existing,
        candidate,
        context(candidate_quality=ImageQuality.HIGH, existing_quality=ImageQuality.LOW),
    )

    assert result.changes["image_url"] == "b.jpg"
    assert result.changes["image_source"] == "lipseys"
    assert result.image_change == "upgraded"


def test_image_not_replaced_sideways_regardless_of_priority():
    existing = product(image_url="a.jpg", image_source="bill-hicks")
    candidate = CandidateRecord(upc="000111222333", vendor_slug="lipseys", image_url="b.jpg")

    result = merge(
        existing,
        candidate,
        context(
            candidate_priority=1,
            existing_priority=9,
            candidate_quality=ImageQuality.HIGH,
            existing_quality=ImageQuality.HIGH,
        ),
    )

    assert result.outcome == MergeOutcome.NO_CHANGE


def test_image_added_to_empty_product():
    existing = product(description="x")
    candidate = CandidateRecord(upc="000111222333", vendor_slug="chattanooga", image_url="a.jpg")
    result = merge(existing, candidate, context(candidate_quality=ImageQuality.LOW))
    assert result.image_change == "added"
    assert result.changes["image_source"] == "chattanooga"


def test_name_filled_when_empty():
    existing = product()
    candidate = CandidateRecord(upc="000111222333", vendor_slug="b", name="Vendor B name")
    result = merge(existing, candidate, context(candidate_priority=9))
    assert result.changes["name"] == "Vendor B name"
    assert result.changes["priority_source"] == "b"
    assert result.changes["priority_calculated_at"] == NOW


def test_name_replaced_by_better_ranked_vendor():
    existing = product(name="Old name", priority_source="b")
    candidate = CandidateRecord(upc="000111222333", vendor_slug="a", name="Better name")

    result = merge(existing, candidate, context(candidate_priority=1, existing_priority=3))

    assert result.changes["name"] == "Better name"
    assert result.changes["priority_source"] == "a"


def test_name_kept_against_equal_or_worse_rank():
    existing = product(name="Old name", priority_source="b")
    candidate = CandidateRecord(upc="000111222333", vendor_slug="a", name="Other name")

    assert merge(existing, candidate, context(candidate_priority=3, existing_priority=3)).outcome == MergeOutcome.NO_CHANGE
    assert merge(existing, candidate, context(candidate_priority=4, existing_priority=3)).outcome == MergeOutcome.NO_CHANGE


def test_name_updated_by_same_vendor():
    existing = product(name="Old name", priority_source="a")
    candidate = CandidateRecord(upc="000111222333", vendor_slug="a", name="Renamed")
    result = merge(existing, candidate, context(candidate_priority=7, existing_priority=7))
    assert result.changes["name"] == "Renamed"


def test_unranked_existing_source_loses_to_ranked_vendor():
    existing = product(name="Old name", priority_source="gone-vendor")
    candidate = CandidateRecord(upc="000111222333", vendor_slug="a", name="New name")
    result = merge(existing, candidate, context(candidate_priority=4, existing_priority=None))
    assert result.changes["name"] == "New name"


def test_no_change_when_nothing_new():
    existing = product(
        name="Glock 19",
        brand="Glock",
        image_url="a.jpg",
        image_source="lipseys",
        priority_source="lipseys",
    )
    candidate = CandidateRecord(
        upc="000111222333",
        vendor_slug="lipseys",
        name="Glock 19",
        brand="Glock",
        image_url="a.jpg",
    )

    result = merge(
        existing,
        candidate,
        context(candidate_quality=ImageQuality.HIGH, existing_quality=ImageQuality.HIGH),
    )

    assert result.outcome == MergeOutcome.NO_CHANGE
    assert result.changes == {}
    assert result.image_change is None


def test_identity_mismatch_raises():
    existing = product(upc="000000000001")
    candidate = CandidateRecord(upc="000111222333", vendor_slug="a")
    with pytest.raises(IdentityMismatchError):
        merge(existing, candidate, context())


def test_apply_merge_sets_attributes():
    existing = product()
    candidate = CandidateRecord(upc="000111222333", vendor_slug="a", brand="Glock", caliber="9mm")
    result = merge(existing, candidate, context())

    apply_merge(existing, result)

    assert existing.brand == "Glock"
    assert existing.caliber == "9mm"
    assert result.changed_fields == ["brand", "caliber"]


def test_low_then_high_vendor_scenario():
    """Low-tier vendor creates the product, high-tier vendor upgrades the image."""
    vendor_a = CandidateRecord(upc="000111222333", vendor_slug="vendor-a", image_url="a.jpg")
    inserted = merge(None, vendor_a, context(candidate_quality=ImageQuality.LOW))
    existing = product(**inserted.changes)

    vendor_b = CandidateRecord(
        upc="000111222333",
        vendor_slug="vendor-b",
        image_url="b.jpg",
        description="Full description",
        category="Handguns",
    )
    result = merge(
        existing,
        vendor_b,
        context(candidate_quality=ImageQuality.HIGH, existing_quality=ImageQuality.LOW),
    )
    apply_merge(existing, result)

    assert existing.image_url == "b.jpg"
    assert existing.image_source == "vendor-b"
    assert existing.description == "Full description"
    assert existing.source == "vendor-a"
