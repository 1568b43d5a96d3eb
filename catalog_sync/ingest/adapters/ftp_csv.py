"""Bill Hicks adapter (daily catalog CSV on FTP)."""

import asyncio
import csv
import ftplib
import io
import logging
import socket
from datetime import datetime
from typing import Callable, Optional

from catalog_sync.config import settings
from catalog_sync.ingest.base import (
    AuthenticationError,
    BaseVendorAdapter,
    MalformedFeedError,
    TransientFeedError,
)
from catalog_sync.ingest.http_client import feed_policy
from catalog_sync import metrics

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("universal_product_code", "product_name")

# Transport failures worth another attempt
RETRYABLE_FTP_EXC = (ftplib.error_temp, ftplib.error_proto, socket.timeout, ConnectionError, EOFError)


def parse_catalog_csv(content: bytes) -> list[dict]:
    """
    Parse the catalog CSV into row dicts.

    Raises:
        MalformedFeedError: Empty file or missing required columns
    """
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        text = content.decode("latin-1")

    reader = csv.DictReader(io.StringIO(text))
    if not reader.fieldnames:
        raise MalformedFeedError("bill-hicks: catalog file is empty")

    header = [name.strip() for name in reader.fieldnames]
    missing = [column for column in REQUIRED_COLUMNS if column not in header]
    if missing:
        raise MalformedFeedError(f"bill-hicks: catalog is missing columns {', '.join(missing)}")
    reader.fieldnames = header

    rows = []
    for row in reader:
        # Blank trailing lines come back as all-empty rows
        if not any((value or "").strip() for value in row.values() if isinstance(value, str)):
            continue
        rows.append({key: value for key, value in row.items() if key is not None})
    return rows


class BillHicksAdapter(BaseVendorAdapter):
    """Downloads the MicroBiz daily catalog over FTP."""

    vendor_slug = "bill-hicks"
    transport = "ftp_csv"

    def __init__(
        self,
        endpoint: Optional[dict] = None,
        ftp_factory: Callable[[], ftplib.FTP] = ftplib.FTP,
    ):
        super().__init__(endpoint)
        self._ftp_factory = ftp_factory

    def _download(self, credentials: dict, path: Optional[str]) -> bytes:
        host, username, password = self.require(credentials, "ftp_server", "ftp_username", "ftp_password")
        port = int(credentials.get("ftp_port") or 21)

        ftp = self._ftp_factory()
        try:
            ftp.connect(host, port, timeout=settings.feed_timeout_seconds)
            try:
                ftp.login(username, password)
            except ftplib.error_perm as e:
                raise AuthenticationError(f"bill-hicks: FTP login rejected ({e})") from e
            if path is None:
                return b""
            buffer = io.BytesIO()
            try:
                ftp.retrbinary(f"RETR {path}", buffer.write)
            except ftplib.error_perm as e:
                raise TransientFeedError(f"bill-hicks: cannot download {path} ({e})") from e
            return buffer.getvalue()
        finally:
            try:
                ftp.quit()
            except (ftplib.Error, OSError, EOFError):
                ftp.close()

    async def _download_with_retry(self, credentials: dict, path: Optional[str]) -> bytes:
        policy = feed_policy(self.vendor_slug)
        last_error = ""
        for attempt in range(1, policy.max_attempts + 1):
            try:
                return await asyncio.to_thread(self._download, credentials, path)
            except RETRYABLE_FTP_EXC as e:
                last_error = f"{type(e).__name__}: {e}"
            except OSError as e:
                last_error = f"connection failed: {e}"

            if attempt < policy.max_attempts:
                sleep_s = policy.backoff(attempt)
                metrics.record_feed_retry(self.vendor_slug)
                logger.warning(
                    f"bill-hicks: {last_error}, retrying in {sleep_s:.1f}s "
                    f"(attempt {attempt}/{policy.max_attempts})"
                )
                await asyncio.sleep(sleep_s)

        raise TransientFeedError(f"bill-hicks: {last_error} after {policy.max_attempts} attempts")

    async def fetch_feed(self, credentials: dict, since: Optional[datetime] = None) -> list[dict]:
        path = self.endpoint.get("catalog_path")
        content = await self._download_with_retry(credentials, path)
        rows = parse_catalog_csv(content)
        logger.info(f"bill-hicks: parsed {len(rows)} catalog rows ({len(content)} bytes)")
        return rows

    async def test_connection(self, credentials: dict) -> str:
        await self._download_with_retry(credentials, None)
        return "Connected to Bill Hicks FTP"
