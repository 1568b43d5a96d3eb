"""Tests for the image upgrade policy."""

import pytest

from catalog_sync.reconcile.image_quality import ImageDecision, decide_image
from catalog_sync.reconcile.types import ImageQuality

HIGH = ImageQuality.HIGH
LOW = ImageQuality.LOW


@pytest.mark.parametrize(
    "existing_url,existing_quality,candidate_quality,expected",
    [
        (None, None, HIGH, ImageDecision.USE_CANDIDATE),
        ("", None, LOW, ImageDecision.USE_CANDIDATE),
        ("a.jpg", LOW, HIGH, ImageDecision.USE_CANDIDATE),
        ("a.jpg", LOW, LOW, ImageDecision.KEEP_EXISTING),
        ("a.jpg", HIGH, HIGH, ImageDecision.KEEP_EXISTING),
        ("a.jpg", HIGH, LOW, ImageDecision.KEEP_EXISTING),
    ],
)
def test_decision_table(existing_url, existing_quality, candidate_quality, expected):
    assert decide_image(existing_url, existing_quality, "b.jpg", candidate_quality) == expected


def test_empty_candidate_never_replaces():
    assert decide_image(None, None, None, HIGH) == ImageDecision.KEEP_EXISTING
    assert decide_image("a.jpg", LOW, "  ", HIGH) == ImageDecision.KEEP_EXISTING


def test_existing_image_from_unknown_vendor_counts_as_high():
    assert decide_image("a.jpg", None, "b.jpg", HIGH) == ImageDecision.KEEP_EXISTING


def test_candidate_with_unknown_tier_fills_only_empty_image():
    assert decide_image(None, None, "b.jpg", None) == ImageDecision.USE_CANDIDATE
    assert decide_image("a.jpg", LOW, "b.jpg", None) == ImageDecision.KEEP_EXISTING


def test_image_quality_parse():
    assert ImageQuality.parse("high") == HIGH
    assert ImageQuality.parse("low") == LOW
    assert ImageQuality.parse("medium") is None
    assert ImageQuality.parse(None) is None
