"""Shared fixtures: file-backed SQLite database and vendor seeding helpers."""

import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_catalog.db")
os.environ.setdefault("ENCRYPTION_KEY", "YWFhYWFhYWFhYWFhYWFhYWFhYWFhYWFhYWFhYWFhYWE=")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import asyncio
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from catalog_sync.db.credentials import CredentialStore
from catalog_sync.db.models import Base, Product, Vendor
from catalog_sync.ingest.base import BaseVendorAdapter
from catalog_sync.ingest.request_queue import RequestQueue
from catalog_sync.reconcile.priority import PriorityResolver
from catalog_sync.worker.orchestrator import SyncOrchestrator


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


async def add_vendor(session_factory, slug, priority=None, image_quality="high", enabled=True, **kwargs):
    async with session_factory() as session:
        vendor = Vendor(
            slug=slug,
            display_name=kwargs.pop("display_name", slug.title()),
            priority=priority,
            image_quality=image_quality,
            enabled=enabled,
            transport=kwargs.pop("transport", "rest_json"),
            **kwargs,
        )
        session.add(vendor)
        await session.commit()
        return vendor


async def get_product(session_factory, upc):
    async with session_factory() as session:
        result = await session.execute(select(Product).where(Product.upc == upc))
        return result.scalar_one_or_none()


class FakeAdapter(BaseVendorAdapter):
    """Serves fixed rows for a real vendor slug so its field mapping applies."""

    def __init__(self, vendor_slug, rows=None, error=None, supports_incremental=False):
        super().__init__(endpoint={})
        self.vendor_slug = vendor_slug
        self.rows = rows or []
        self.error = error
        self.supports_incremental = supports_incremental
        self.fetches = []
        self.gate: Optional[asyncio.Event] = None
        self.fetch_started = asyncio.Event()

    async def fetch_feed(self, credentials, since=None):
        self.fetches.append({"credentials": credentials, "since": since})
        self.fetch_started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return [dict(row) for row in self.rows]

    async def test_connection(self, credentials):
        if self.error is not None:
            raise self.error
        return f"connected as {credentials.get('email')}"


def lipseys_row(upc, item_no, **extra):
    row = {
        "itemNo": item_no,
        "upc": upc,
        "description1": f"Item {item_no}",
        "manufacturer": "Glock",
        "price": "499.00",
        "quantity": "3",
        "imageName": f"{item_no}.jpg",
    }
    row.update(extra)
    return row


def chattanooga_row(upc, sku, **extra):
    row = {
        "cssi_id": sku,
        "upc": upc,
        "name": f"Chattanooga {sku}",
        "manufacturer": "Glock",
        "image_location": f"https://images.chattanooga.test/{sku}.jpg",
    }
    row.update(extra)
    return row


def sports_south_row(upc, item_no, **extra):
    row = {
        "ITEMNO": item_no,
        "ITUPC": upc,
        "IDESC": f"SPORTS SOUTH {item_no}",
        "MFGR_NAME": "Glock",
        "CPRC": "489.00",
        "QTYOH": "2",
    }
    row.update(extra)
    return row


class Harness:
    """Orchestrator wired to fake adapters and a test database."""

    def __init__(self, session_factory, progress_interval=2):
        self.session_factory = session_factory
        self.adapters: dict[str, FakeAdapter] = {}
        self.credentials = CredentialStore(session_factory)
        self.orchestrator = SyncOrchestrator(
            session_factory=session_factory,
            resolver=PriorityResolver(session_factory, ttl_seconds=0),
            queue=RequestQueue(max_concurrent=2, name="test"),
            adapter_lookup=self.lookup,
            credential_store=self.credentials,
            stale_after_seconds=3600,
            progress_interval=progress_interval,
        )

    def lookup(self, vendor_slug):
        if vendor_slug not in self.adapters:
            raise ValueError(f"Unknown vendor: {vendor_slug}")
        return self.adapters[vendor_slug]

    async def vendor(self, slug, rows=None, priority=None, image_quality="high", **kwargs):
        await add_vendor(self.session_factory, slug, priority=priority, image_quality=image_quality, **kwargs)
        await self.credentials.set(slug, {"email": f"{slug}@example.com", "password": "pw"})
        self.adapters[slug] = FakeAdapter(slug, rows)
        return self.adapters[slug]

    async def count(self, model):
        async with self.session_factory() as session:
            return (await session.execute(select(func.count()).select_from(model))).scalar_one()


@pytest.fixture
def harness(session_factory):
    return Harness(session_factory)
