"""Sports South adapter (ASMX web service returning XML DataSets)."""

import logging
from datetime import datetime
from typing import Optional
from xml.etree import ElementTree as ET

from catalog_sync.ingest.base import AuthenticationError, BaseVendorAdapter, MalformedFeedError
from catalog_sync.ingest.http_client import feed_policy, request_with_policy

logger = logging.getLogger(__name__)

# LastUpdate value that asks for the whole catalog
FULL_CATALOG_DATE = "1/1/1990"

AUTH_FAILURE_MARKERS = ("authentication failed", "invalid login", "not authorized", "invalid customer")


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def parse_dataset(content: bytes | str, table: str = "Table") -> list[dict]:
    """
    Parse an ASMX DataSet response into row dicts.

    The service sometimes wraps the DataSet as escaped text inside a
    <string> element; that is unwrapped first.

    Raises:
        AuthenticationError: Response is an authentication fault
        MalformedFeedError: Response is not XML
    """
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        raise MalformedFeedError(f"unparseable XML: {e}") from e

    if _local(root.tag) == "string" and root.text and root.text.strip().startswith("<"):
        return parse_dataset(root.text.strip(), table)

    rows = []
    for element in root.iter():
        if _local(element.tag) != table:
            continue
        row = {}
        for child in element:
            row[_local(child.tag)] = (child.text or "").strip()
        rows.append(row)

    if not rows:
        text = " ".join(t.strip() for t in root.itertext() if t.strip()).lower()
        if any(marker in text for marker in AUTH_FAILURE_MARKERS):
            raise AuthenticationError(f"service rejected credentials: {text[:200]}")
        if any(_local(element.tag) == "Fault" for element in root.iter()):
            raise MalformedFeedError(f"SOAP fault: {text[:200]}")

    return rows


class SportsSouthAdapter(BaseVendorAdapter):
    """Fetches DailyItemUpdate and enriches rows with manufacturer and category names."""

    vendor_slug = "sports-south"
    transport = "soap_xml"
    supports_incremental = True

    CREDENTIAL_FIELDS = ("userName", "customerNumber", "password", "source")

    def _service_url(self, method: str) -> str:
        base = self.endpoint.get("base_url", "").rstrip("/")
        return f"{base}{self.endpoint.get('service_path', '/inventory.asmx')}/{method}"

    def _auth_params(self, credentials: dict) -> dict:
        user_name, customer_number, password, source = self.require(credentials, *self.CREDENTIAL_FIELDS)
        return {
            "UserName": user_name,
            "CustomerNumber": customer_number,
            "Password": password,
            "Source": source,
        }

    async def _call(self, client, method: str, params: dict) -> list[dict]:
        resp = await request_with_policy(
            client, "POST", self._service_url(method), feed_policy(self.vendor_slug), data=params
        )
        return parse_dataset(resp.content)

    async def fetch_feed(self, credentials: dict, since: Optional[datetime] = None) -> list[dict]:
        auth = self._auth_params(credentials)
        last_update = f"{since.month}/{since.day}/{since.year}" if since else FULL_CATALOG_DATE

        async with self._client() as client:
            items = await self._call(
                client, "DailyItemUpdate", {**auth, "LastUpdate": last_update, "LastItem": "-1"}
            )
            manufacturers = await self._call(client, "ManufacturerUpdate", auth)
            categories = await self._call(client, "CategoryUpdate", auth)

        manufacturer_names = {row.get("MFGNO"): row.get("MFGNM") for row in manufacturers}
        category_names = {row.get("CATID"): row.get("CATDES") for row in categories}

        for row in items:
            if not row.get("MFGR_NAME") and row.get("IMFGNO") in manufacturer_names:
                row["MFGR_NAME"] = manufacturer_names[row["IMFGNO"]]
            if not row.get("CATDES") and row.get("CATID") in category_names:
                row["CATDES"] = category_names[row["CATID"]]

        logger.info(
            f"sports-south: fetched {len(items)} items (LastUpdate={last_update}, "
            f"{len(manufacturer_names)} manufacturers, {len(category_names)} categories)"
        )
        return items

    async def test_connection(self, credentials: dict) -> str:
        auth = self._auth_params(credentials)
        today = datetime.utcnow()
        async with self._client() as client:
            rows = await self._call(
                client,
                "DailyItemUpdate",
                {**auth, "LastUpdate": f"{today.month}/{today.day}/{today.year}", "LastItem": "0"},
            )
        return f"Connected to Sports South ({len(rows)} items updated today)"
