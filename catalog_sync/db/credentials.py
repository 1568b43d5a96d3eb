"""Vendor credential storage.

Credentials are a small JSON document per (vendor, company) encrypted with
Fernet. Company-specific credentials take precedence over the vendor-wide row
(company_id NULL).
"""

import json
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_sync.db.models import VendorCredential

logger = logging.getLogger(__name__)


class CredentialStore:
    """Reads and writes encrypted vendor credentials."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, vendor_slug: str, company_id: Optional[int] = None) -> Optional[dict]:
        """
        Fetch credentials for a vendor.

        Args:
            vendor_slug: Vendor slug
            company_id: Company to look up first; falls back to the vendor-wide row

        Returns:
            Credential dict or None if nothing usable is stored
        """
        async with self._session_factory() as session:
            row = None
            if company_id is not None:
                row = await self._find(session, vendor_slug, company_id)
            if row is None:
                row = await self._find(session, vendor_slug, None)

        if row is None or not row.secret:
            return None

        try:
            return json.loads(row.secret)
        except ValueError:
            logger.error(f"Stored credentials for {vendor_slug} are not valid JSON")
            return None

    async def set(
        self, vendor_slug: str, credentials: dict, company_id: Optional[int] = None
    ) -> None:
        """Create or replace credentials for a vendor."""
        async with self._session_factory() as session:
            row = await self._find(session, vendor_slug, company_id)
            if row is None:
                row = VendorCredential(vendor_slug=vendor_slug, company_id=company_id)
                session.add(row)
            row.secret = json.dumps(credentials)
            await session.commit()
        logger.info(f"Stored credentials for {vendor_slug} (company={company_id})")

    @staticmethod
    async def _find(
        session: AsyncSession, vendor_slug: str, company_id: Optional[int]
    ) -> Optional[VendorCredential]:
        query = select(VendorCredential).where(VendorCredential.vendor_slug == vendor_slug)
        if company_id is None:
            query = query.where(VendorCredential.company_id.is_(None))
        else:
            query = query.where(VendorCredential.company_id == company_id)
        result = await session.execute(query)
        return result.scalar_one_or_none()
