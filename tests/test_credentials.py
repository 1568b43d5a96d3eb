"""Tests for encrypted vendor credential storage."""

import pytest
from sqlalchemy import text

from catalog_sync.db.credentials import CredentialStore
from catalog_sync.db.encryption import decrypt_value, encrypt_value


@pytest.mark.asyncio
async def test_credentials_are_encrypted_at_rest(session_factory):
    store = CredentialStore(session_factory)
    await store.set("lipseys", {"email": "buyer@example.com", "password": "hunter2"})

    async with session_factory() as session:
        raw = (await session.execute(text("SELECT secret FROM vendor_credentials"))).scalar_one()

    assert "hunter2" not in raw
    assert await store.get("lipseys") == {"email": "buyer@example.com", "password": "hunter2"}


@pytest.mark.asyncio
async def test_company_credentials_fall_back_to_vendor_wide(session_factory):
    store = CredentialStore(session_factory)
    await store.set("chattanooga", {"sid": "shared", "token": "t"})
    await store.set("chattanooga", {"sid": "store-9", "token": "t"}, company_id=9)

    assert (await store.get("chattanooga", company_id=9))["sid"] == "store-9"
    assert (await store.get("chattanooga", company_id=3))["sid"] == "shared"
    assert await store.get("bill-hicks") is None


@pytest.mark.asyncio
async def test_set_replaces_existing(session_factory):
    store = CredentialStore(session_factory)
    await store.set("lipseys", {"email": "old@example.com"})
    await store.set("lipseys", {"email": "new@example.com"})

    assert (await store.get("lipseys"))["email"] == "new@example.com"


def test_encrypt_value_round_trip():
    token = encrypt_value("secret")
    assert token != "secret"
    assert decrypt_value(token) == "secret"
    assert decrypt_value("not-a-token") is None
