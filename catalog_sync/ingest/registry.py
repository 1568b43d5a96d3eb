"""Adapter registry for supported vendors."""

import logging
from typing import Type

from catalog_sync.ingest.adapters import (
    BillHicksAdapter,
    ChattanoogaAdapter,
    LipseysAdapter,
    SportsSouthAdapter,
)
from catalog_sync.ingest.base import BaseVendorAdapter

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Registry for vendor feed adapters, keyed by vendor slug."""

    _adapters: dict[str, Type[BaseVendorAdapter]] = {
        "lipseys": LipseysAdapter,
        "sports-south": SportsSouthAdapter,
        "bill-hicks": BillHicksAdapter,
        "chattanooga": ChattanoogaAdapter,
    }

    _instances: dict[str, BaseVendorAdapter] = {}

    @classmethod
    def get_adapter(cls, vendor_slug: str) -> BaseVendorAdapter:
        """
        Get or create the adapter instance for a vendor.

        Args:
            vendor_slug: Vendor slug

        Returns:
            Adapter instance

        Raises:
            ValueError: If no adapter is registered for the slug
        """
        if vendor_slug not in cls._adapters:
            raise ValueError(
                f"Unknown vendor: {vendor_slug}. Available: {list(cls._adapters.keys())}"
            )

        # Lazy initialization
        if vendor_slug not in cls._instances:
            cls._instances[vendor_slug] = cls._adapters[vendor_slug]()
            logger.info(f"Initialized adapter for vendor: {vendor_slug}")

        return cls._instances[vendor_slug]

    @classmethod
    def list_vendors(cls) -> list[str]:
        """List all registered vendor slugs."""
        return list(cls._adapters.keys())
