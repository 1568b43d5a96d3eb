"""REST/JSON vendor adapters (Lipsey's, Chattanooga)."""

import hashlib
import logging
from datetime import datetime
from typing import Any, Optional

import httpx

from catalog_sync.ingest.base import AuthenticationError, BaseVendorAdapter, MalformedFeedError
from catalog_sync.ingest.http_client import feed_policy, request_with_policy

logger = logging.getLogger(__name__)


def _json(resp: httpx.Response, vendor: str) -> Any:
    try:
        return resp.json()
    except ValueError as e:
        raise MalformedFeedError(f"{vendor}: response is not JSON") from e


class LipseysAdapter(BaseVendorAdapter):
    """Lipsey's integration API: token login, then the full catalog feed."""

    vendor_slug = "lipseys"
    transport = "rest_json"

    def _url(self, key: str) -> str:
        return self.endpoint.get("base_url", "").rstrip("/") + self.endpoint[key]

    async def _login(self, client: httpx.AsyncClient, credentials: dict) -> str:
        email, password = self.require(credentials, "email", "password")
        resp = await request_with_policy(
            client,
            "POST",
            self._url("login_path"),
            feed_policy(self.vendor_slug),
            json={"Email": email, "Password": password},
        )
        body = _json(resp, self.vendor_slug)
        token = body.get("token") if isinstance(body, dict) else None
        if not token:
            raise AuthenticationError("lipseys: login returned no token")
        return token

    async def fetch_feed(self, credentials: dict, since: Optional[datetime] = None) -> list[dict]:
        async with self._client() as client:
            token = await self._login(client, credentials)
            resp = await request_with_policy(
                client,
                "GET",
                self._url("catalog_path"),
                feed_policy(self.vendor_slug),
                headers={"Token": token},
            )
        body = _json(resp, self.vendor_slug)

        if not isinstance(body, dict) or not isinstance(body.get("data"), list):
            if isinstance(body, dict) and body.get("success") is False:
                errors = "; ".join(str(e) for e in body.get("errors") or [])
                if "auth" in errors.lower() or "token" in errors.lower():
                    raise AuthenticationError(f"lipseys: {errors}")
                raise MalformedFeedError(f"lipseys: catalog request failed: {errors}")
            raise MalformedFeedError("lipseys: catalog response has no data list")

        rows = [row for row in body["data"] if isinstance(row, dict)]
        logger.info(f"lipseys: fetched {len(rows)} catalog items")
        return rows

    async def test_connection(self, credentials: dict) -> str:
        async with self._client() as client:
            await self._login(client, credentials)
        return "Connected to Lipsey's API"


class ChattanoogaAdapter(BaseVendorAdapter):
    """Chattanooga REST API, paginated item listing."""

    vendor_slug = "chattanooga"
    transport = "rest_json"
    supports_incremental = True

    PER_PAGE = 250
    MAX_PAGES = 2000

    def _headers(self, credentials: dict) -> dict[str, str]:
        sid, token = self.require(credentials, "sid", "token")
        token_hash = hashlib.md5(token.encode()).hexdigest()
        # SID:MD5(token), not base64 encoded
        return {"Authorization": f"Basic {sid}:{token_hash}"}

    def _items_url(self) -> str:
        return self.endpoint.get("base_url", "").rstrip("/") + self.endpoint.get("catalog_path", "/items")

    async def _page(
        self, client: httpx.AsyncClient, headers: dict, params: dict
    ) -> tuple[list[dict], int]:
        resp = await request_with_policy(
            client, "GET", self._items_url(), feed_policy(self.vendor_slug), headers=headers, params=params
        )
        body = _json(resp, self.vendor_slug)
        if not isinstance(body, dict) or not isinstance(body.get("items"), list):
            raise MalformedFeedError("chattanooga: response has no items list")
        pagination = body.get("pagination") or {}
        try:
            page_count = int(pagination.get("page_count", 1))
        except (TypeError, ValueError):
            page_count = 1
        return [row for row in body["items"] if isinstance(row, dict)], page_count

    async def fetch_feed(self, credentials: dict, since: Optional[datetime] = None) -> list[dict]:
        headers = self._headers(credentials)
        params: dict[str, Any] = {"per_page": self.PER_PAGE}
        if since is not None:
            params["modified_since"] = since.strftime("%Y-%m-%dT%H:%M:%S")

        rows: list[dict] = []
        async with self._client() as client:
            page = 1
            while page <= self.MAX_PAGES:
                items, page_count = await self._page(client, headers, {**params, "page": page})
                rows.extend(items)
                if not items or page >= page_count:
                    break
                page += 1

        logger.info(f"chattanooga: fetched {len(rows)} items over {page} pages")
        return rows

    async def test_connection(self, credentials: dict) -> str:
        async with self._client() as client:
            await self._page(client, self._headers(credentials), {"per_page": 1, "page": 1})
        return "Connected to Chattanooga API"
