"""Image upgrade policy.

Images move up a fixed lattice: empty, then low, then high. A vendor's tier
belongs to the vendor, not the individual image, and vendor priority plays no
part in the decision.

    existing   candidate      outcome
    none       high or low    use candidate
    low        high           use candidate
    low        low            keep existing
    high       high or low    keep existing
"""

from enum import Enum
from typing import Optional

from catalog_sync.reconcile.types import ImageQuality, is_empty


class ImageDecision(str, Enum):
    KEEP_EXISTING = "keep_existing"
    USE_CANDIDATE = "use_candidate"


def decide_image(
    existing_url: Optional[str],
    existing_quality: Optional[ImageQuality],
    candidate_url: Optional[str],
    candidate_quality: Optional[ImageQuality],
) -> ImageDecision:
    """
    Decide whether a candidate image replaces the existing one.

    Args:
        existing_url: Current image URL on the canonical product
        existing_quality: Tier of the vendor that supplied the current image
        candidate_url: Image URL offered by the candidate
        candidate_quality: Tier of the candidate's vendor

    Returns:
        ImageDecision.USE_CANDIDATE or ImageDecision.KEEP_EXISTING
    """
    if is_empty(candidate_url):
        return ImageDecision.KEEP_EXISTING

    if is_empty(existing_url):
        return ImageDecision.USE_CANDIDATE

    # An image from a vendor with no known tier is treated as high so it can
    # never be displaced sideways.
    if existing_quality is None:
        existing_quality = ImageQuality.HIGH

    if existing_quality == ImageQuality.LOW and candidate_quality == ImageQuality.HIGH:
        return ImageDecision.USE_CANDIDATE

    return ImageDecision.KEEP_EXISTING
