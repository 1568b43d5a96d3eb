"""HTTP API tests using an in-process ASGI client."""

import httpx
import pytest
import pytest_asyncio

from catalog_sync.api.deps import get_database, get_orchestrator
from catalog_sync.db.models import SyncRun
from catalog_sync.ingest.errors import AuthenticationError
from catalog_sync.main import app

from conftest import chattanooga_row, lipseys_row

ADMIN = {"X-Admin-API-Key": "test-admin-key"}


@pytest_asyncio.fixture
async def client(harness):
    async def override_database():
        async with harness.session_factory() as session:
            yield session

    app.dependency_overrides[get_database] = override_database
    app.dependency_overrides[get_orchestrator] = lambda: harness.orchestrator

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_list_vendors_orders_unranked_last(client, harness):
    await harness.vendor("bill-hicks", priority=None)
    await harness.vendor("chattanooga", priority=2, image_quality="low")
    await harness.vendor("lipseys", priority=1)

    response = await client.get("/api/vendors")

    assert response.status_code == 200
    assert [vendor["slug"] for vendor in response.json()] == ["lipseys", "chattanooga", "bill-hicks"]


@pytest.mark.asyncio
async def test_priority_routes_require_admin_key(client, harness):
    await harness.vendor("lipseys", priority=1)

    missing = await client.put("/api/vendors/lipseys/priority", json={"priority": 2})
    wrong = await client.put(
        "/api/vendors/lipseys/priority", json={"priority": 2}, headers={"X-Admin-API-Key": "nope"}
    )

    assert missing.status_code == 422
    assert wrong.status_code == 403


@pytest.mark.asyncio
async def test_update_priority(client, harness):
    await harness.vendor("lipseys", priority=1)
    await harness.vendor("chattanooga", priority=2, image_quality="low")

    moved = await client.put("/api/vendors/chattanooga/priority", json={"priority": 1}, headers=ADMIN)
    past_end = await client.put("/api/vendors/lipseys/priority", json={"priority": 5}, headers=ADMIN)
    unknown = await client.put("/api/vendors/nobody/priority", json={"priority": 1}, headers=ADMIN)
    invalid = await client.put("/api/vendors/lipseys/priority", json={"priority": 0}, headers=ADMIN)

    assert moved.status_code == 200
    assert moved.json()["priority"] == 1
    assert past_end.status_code == 400
    assert unknown.status_code == 404
    assert invalid.status_code == 422

    listing = await client.get("/api/vendors")
    assert [(v["slug"], v["priority"]) for v in listing.json()] == [("chattanooga", 1), ("lipseys", 2)]


@pytest.mark.asyncio
async def test_reorder_priorities(client, harness):
    await harness.vendor("lipseys", priority=1)
    await harness.vendor("chattanooga", priority=2, image_quality="low")

    response = await client.put(
        "/api/vendors/priorities", json={"vendors": ["chattanooga", "lipseys"]}, headers=ADMIN
    )
    partial = await client.put("/api/vendors/priorities", json={"vendors": ["lipseys"]}, headers=ADMIN)

    assert response.status_code == 200
    assert [(v["slug"], v["priority"]) for v in response.json()] == [("chattanooga", 1), ("lipseys", 2)]
    assert partial.status_code == 400


@pytest.mark.asyncio
async def test_connection_check(client, harness):
    adapter = await harness.vendor("lipseys", priority=1)

    ok = await client.post("/api/vendors/lipseys/test-connection", headers=ADMIN)
    assert ok.status_code == 200
    assert ok.json()["success"] is True

    adapter.error = AuthenticationError("lipseys: 401")
    failed = await client.post(
        "/api/vendors/lipseys/test-connection",
        json={"credentials": {"email": "bad@example.com", "password": "x"}},
        headers=ADMIN,
    )
    assert failed.json() == {"success": False, "message": "lipseys: 401", "error_kind": "authentication"}

    missing = await client.post("/api/vendors/nobody/test-connection", headers=ADMIN)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_sync_inline_then_product_lookup(client, harness):
    await harness.vendor("lipseys", [lipseys_row("764503037108", "GL19")], priority=1)

    response = await client.post("/api/syncs/lipseys?mode=full&wait=true", headers=ADMIN)

    assert response.status_code == 202
    body = response.json()
    assert body["queued"] is False
    assert body["run"]["status"] == "success"
    assert body["run"]["created"] == 1
    assert body["run"]["processed"] == 1

    product = await client.get("/api/products/764503037108")
    assert product.status_code == 200
    data = product.json()
    assert data["name"] == "Item GL19"
    assert data["source"] == "lipseys"
    assert [m["vendor_sku"] for m in data["vendor_mappings"]] == ["GL19"]

    latest = await client.get("/api/syncs/lipseys/latest")
    assert latest.json()["processed_count"] == 1


@pytest.mark.asyncio
async def test_sync_in_background(client, harness):
    await harness.vendor("chattanooga", [chattanooga_row("764503037108", "C1")], priority=2, image_quality="low")

    response = await client.post("/api/syncs/chattanooga", headers=ADMIN)

    assert response.status_code == 202
    assert response.json()["queued"] is True
    assert response.json()["mode"] == "incremental"

    runs = await client.get("/api/syncs", params={"vendor_slug": "chattanooga"})
    assert len(runs.json()) == 1
    assert runs.json()[0]["status"] == "success"
    assert runs.json()[0]["trigger"] == "manual"


@pytest.mark.asyncio
async def test_sync_conflict_and_errors(client, harness):
    await harness.vendor("lipseys", [lipseys_row("764503037108", "GL19")], priority=1)
    async with harness.session_factory() as session:
        live = SyncRun(vendor_slug="lipseys", status="in_progress")
        session.add(live)
        await session.commit()
        live_id = live.id

    conflict = await client.post("/api/syncs/lipseys", headers=ADMIN)
    assert conflict.status_code == 409
    assert conflict.json()["detail"]["run_id"] == live_id

    unknown = await client.post("/api/syncs/nobody", headers=ADMIN)
    assert unknown.status_code == 404

    bad_mode = await client.post("/api/syncs/lipseys?mode=partial", headers=ADMIN)
    assert bad_mode.status_code == 422


@pytest.mark.asyncio
async def test_product_lookup_errors(client):
    assert (await client.get("/api/products/not-a-upc")).status_code == 400
    assert (await client.get("/api/products/000111222333")).status_code == 404


@pytest.mark.asyncio
async def test_queue_status(client):
    response = await client.get("/api/syncs/queue")
    assert response.json() == {"queue_length": 0, "running": 0, "max_concurrent": 2}
