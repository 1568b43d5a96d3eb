"""Base adapter interface for vendor catalog feeds."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

import httpx

from catalog_sync.config import settings
from catalog_sync.ingest.errors import (  # noqa: F401 re-exported for adapters
    AuthenticationError,
    CandidateError,
    FeedError,
    MalformedFeedError,
    TransientFeedError,
)
from catalog_sync.reconcile.field_mapping import build_candidate, skip_reason
from catalog_sync.reconcile.types import CandidateRecord

logger = logging.getLogger(__name__)


class BaseVendorAdapter(ABC):
    """Abstract base class for vendor feed adapters.

    An adapter downloads a vendor's feed and turns each row into a
    CandidateRecord through the vendor's field mapping. Adapters hold no
    state shared between passes.
    """

    vendor_slug: str = ""
    transport: str = ""
    supports_incremental: bool = False

    def __init__(
        self,
        endpoint: Optional[dict] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint if endpoint is not None else settings.vendor_endpoints.get(self.vendor_slug, {})
        self._http_transport = http_transport

    def _client(self, **kwargs) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=settings.feed_timeout_seconds,
            transport=self._http_transport,
            **kwargs,
        )

    @abstractmethod
    async def fetch_feed(self, credentials: dict, since: Optional[datetime] = None) -> list[dict]:
        """
        Download the vendor's catalog.

        Args:
            credentials: Vendor credential dict
            since: Only rows changed after this time, if the feed supports it

        Returns:
            Raw rows in feed order

        Raises:
            AuthenticationError: Credentials rejected
            TransientFeedError: Vendor unreachable after retries
            MalformedFeedError: Response could not be parsed
        """
        pass

    @abstractmethod
    async def test_connection(self, credentials: dict) -> str:
        """Check credentials against the vendor. Returns a status message."""
        pass

    def normalize(self, row: dict, retail_vertical_id: Optional[int] = None) -> Optional[CandidateRecord]:
        """
        Map a raw row to a candidate.

        Returns:
            CandidateRecord, or None when the row is excluded by a vendor rule

        Raises:
            CandidateError: Row is malformed
        """
        reason = skip_reason(self.vendor_slug, row)
        if reason:
            logger.debug(f"{self.vendor_slug}: skipping row ({reason})")
            return None
        return build_candidate(self.vendor_slug, row, retail_vertical_id)

    @staticmethod
    def require(credentials: dict, *keys: str) -> list[str]:
        """Return credential values, raising AuthenticationError if any is missing."""
        missing = [key for key in keys if not credentials.get(key)]
        if missing:
            raise AuthenticationError(f"missing credential fields: {', '.join(missing)}")
        return [credentials[key] for key in keys]
