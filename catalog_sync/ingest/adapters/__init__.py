"""Vendor feed adapters."""

from __future__ import annotations

from catalog_sync.ingest.adapters.ftp_csv import BillHicksAdapter
from catalog_sync.ingest.adapters.rest_json import ChattanoogaAdapter, LipseysAdapter
from catalog_sync.ingest.adapters.soap_xml import SportsSouthAdapter

__all__ = [
    "BillHicksAdapter",
    "ChattanoogaAdapter",
    "LipseysAdapter",
    "SportsSouthAdapter",
]
