"""Field-level merge of a vendor candidate into a canonical product.

The merge is synchronous and side-effect free. Priorities and image tiers are
resolved by the caller and passed in a MergeContext; the result lists the
attribute writes, which the caller applies in its own transaction.

Field groups:
    identity        upc must match, a mismatch is a caller bug
    fill-only       set only while empty, never overwritten
    category group  category + 3 subcategories, written together only while
                    all four are empty
    image           decided by decide_image on vendor image tiers
    source          set on insert only
    name            replaced by the same vendor or a strictly better rank
"""

import logging
from datetime import datetime
from typing import Any, Optional

from catalog_sync.reconcile.image_quality import ImageDecision, decide_image
from catalog_sync.reconcile.types import (
    CATEGORY_FIELDS,
    DEFAULT_PRIORITY,
    FILL_ONLY_FIELDS,
    CandidateRecord,
    MergeContext,
    MergeOutcome,
    MergeResult,
    is_empty,
)

logger = logging.getLogger(__name__)


class IdentityMismatchError(ValueError):
    """Candidate UPC does not match the existing product."""


def merge(existing: Optional[Any], candidate: CandidateRecord, context: MergeContext) -> MergeResult:
    """
    Merge a candidate into an existing canonical product.

    Args:
        existing: Current Product (or any object with the same attributes), None if new
        candidate: Normalized vendor candidate
        context: Resolved priorities and image tiers

    Returns:
        MergeResult with INSERT, UPDATE or NO_CHANGE
    """
    now = context.now or datetime.utcnow()

    if existing is None:
        return _merge_insert(candidate, now)

    if existing.upc != candidate.upc:
        raise IdentityMismatchError(
            f"candidate UPC {candidate.upc!r} merged into product {existing.upc!r}"
        )

    changes: dict[str, Any] = {}

    for field_name in FILL_ONLY_FIELDS:
        offered = getattr(candidate, field_name)
        if is_empty(getattr(existing, field_name)) and not is_empty(offered):
            changes[field_name] = _copy_value(offered)

    if existing.retail_vertical_id is None and candidate.retail_vertical_id is not None:
        changes["retail_vertical_id"] = candidate.retail_vertical_id

    changes.update(_category_changes(existing, candidate))
    changes.update(_name_changes(existing, candidate, context, now))

    image_change = None
    decision = decide_image(
        existing.image_url,
        context.existing_image_quality,
        candidate.image_url,
        context.candidate_image_quality,
    )
    if decision == ImageDecision.USE_CANDIDATE and candidate.image_url != existing.image_url:
        image_change = "added" if is_empty(existing.image_url) else "upgraded"
        changes["image_url"] = candidate.image_url
        changes["image_source"] = candidate.vendor_slug

    if not changes:
        return MergeResult(MergeOutcome.NO_CHANGE)

    logger.debug(
        "UPC %s: %s updates %s", candidate.upc, candidate.vendor_slug, sorted(changes)
    )
    return MergeResult(MergeOutcome.UPDATE, changes, image_change)


def _merge_insert(candidate: CandidateRecord, now: datetime) -> MergeResult:
    changes: dict[str, Any] = {
        "upc": candidate.upc,
        "source": candidate.vendor_slug,
        "status": "active",
    }

    for field_name in FILL_ONLY_FIELDS:
        value = getattr(candidate, field_name)
        if not is_empty(value):
            changes[field_name] = _copy_value(value)

    if candidate.retail_vertical_id is not None:
        changes["retail_vertical_id"] = candidate.retail_vertical_id

    if not is_empty(candidate.category):
        for field_name in CATEGORY_FIELDS:
            value = getattr(candidate, field_name)
            if not is_empty(value):
                changes[field_name] = value

    if not is_empty(candidate.name):
        changes["name"] = candidate.name
        changes["priority_source"] = candidate.vendor_slug
        changes["priority_calculated_at"] = now

    image_change = None
    if not is_empty(candidate.image_url):
        changes["image_url"] = candidate.image_url
        changes["image_source"] = candidate.vendor_slug
        image_change = "added"

    return MergeResult(MergeOutcome.INSERT, changes, image_change)


def _category_changes(existing: Any, candidate: CandidateRecord) -> dict[str, Any]:
    if any(not is_empty(getattr(existing, name)) for name in CATEGORY_FIELDS):
        return {}
    if is_empty(candidate.category):
        # Subcategories without their parent are dropped
        return {}
    return {
        name: getattr(candidate, name)
        for name in CATEGORY_FIELDS
        if not is_empty(getattr(candidate, name))
    }


def _name_changes(
    existing: Any, candidate: CandidateRecord, context: MergeContext, now: datetime
) -> dict[str, Any]:
    if is_empty(candidate.name) or candidate.name == existing.name:
        return {}

    if not is_empty(existing.name):
        same_vendor = existing.priority_source == candidate.vendor_slug
        existing_priority = (
            context.existing_priority
            if context.existing_priority is not None
            else DEFAULT_PRIORITY
        )
        # Equal rank keeps what is there
        if not same_vendor and context.candidate_priority >= existing_priority:
            return {}

    return {
        "name": candidate.name,
        "priority_source": candidate.vendor_slug,
        "priority_calculated_at": now,
    }


def _copy_value(value: Any) -> Any:
    if isinstance(value, dict):
        return dict(value)
    return value


def apply_merge(product: Any, result: MergeResult) -> None:
    """Write a merge result's changes onto a product instance."""
    for field_name, value in result.changes.items():
        setattr(product, field_name, value)
