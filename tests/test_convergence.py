"""Final catalog state after every vendor has run does not depend on vendor order."""

from itertools import permutations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from catalog_sync.db.models import Base

from conftest import Harness, chattanooga_row, get_product, lipseys_row, sports_south_row

UPC = "764503037108"

VENDORS = {
    "lipseys": dict(priority=1, image_quality="high", rows=[lipseys_row(UPC, "GL19")]),
    "chattanooga": dict(priority=2, image_quality="low", rows=[chattanooga_row(UPC, "C19")]),
    "sports-south": dict(priority=3, image_quality="high", rows=[sports_south_row(UPC, "55019")]),
}


async def run_in_order(tmp_path, order):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / ('-'.join(order) + '.db')}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    harness = Harness(session_factory)
    for slug, config in VENDORS.items():
        await harness.vendor(slug, config["rows"], priority=config["priority"], image_quality=config["image_quality"])

    try:
        for slug in order:
            stats = await harness.orchestrator.run_sync_pass(slug)
            assert stats.status == "success"
        # A second round changes nothing
        for slug in order:
            stats = await harness.orchestrator.run_sync_pass(slug)
            assert stats.updated == 0
            assert stats.created == 0
        return await get_product(session_factory, UPC)
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_name_and_image_tier_converge_for_every_order(tmp_path):
    finals = {}
    for order in permutations(VENDORS):
        finals[order] = await run_in_order(tmp_path, order)

    for order, product in finals.items():
        # Best-ranked vendor always ends up owning the name
        assert product.name == "Item GL19", order
        assert product.priority_source == "lipseys", order
        assert VENDORS[product.image_source]["image_quality"] == "high", order


@pytest.mark.asyncio
async def test_low_tier_image_never_survives_a_high_tier_vendor(tmp_path):
    for order in permutations(["chattanooga", "lipseys"]):
        product = await run_in_order(tmp_path, order)
        assert product.image_source == "lipseys"
        assert product.image_url == "https://www.lipseyscloud.com/images/GL19.jpg"
