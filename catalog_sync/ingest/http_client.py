"""HTTP requests to vendor endpoints with retry policy and status-aware errors."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Optional

import httpx

from catalog_sync import metrics
from catalog_sync.config import settings
from catalog_sync.ingest.errors import AuthenticationError, TransientFeedError

logger = logging.getLogger(__name__)

# Retryable exceptions (transport errors)
RETRYABLE_EXC = (
    httpx.ReadTimeout,
    httpx.ConnectTimeout,
    httpx.WriteTimeout,
    httpx.ConnectError,
    httpx.ReadError,
    httpx.RemoteProtocolError,
    httpx.PoolTimeout,
)

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


@dataclass(frozen=True)
class FeedPolicy:
    """Retry policy for one vendor's endpoint."""

    name: str
    max_attempts: int = 3
    backoff_base: float = 1.0
    backoff_max: float = 30.0

    def backoff(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Seconds to wait after a failed attempt (1-based)."""
        if retry_after is not None:
            return min(retry_after, self.backoff_max)
        delay = min(self.backoff_max, self.backoff_base * (2 ** (attempt - 1)))
        return delay + random.random() * self.backoff_base


def feed_policy(vendor_slug: str) -> FeedPolicy:
    """Build a policy from settings."""
    return FeedPolicy(
        name=vendor_slug,
        max_attempts=settings.feed_max_attempts,
        backoff_base=settings.feed_backoff_base_seconds,
        backoff_max=settings.feed_backoff_max_seconds,
    )


def default_headers() -> dict[str, str]:
    return {
        "User-Agent": "catalog-sync/0.1",
        "Accept": "application/json, application/xml;q=0.9, */*;q=0.8",
    }


def _retry_after(resp: httpx.Response) -> Optional[float]:
    value = resp.headers.get("Retry-After")
    if not value:
        return None
    try:
        return float(value)
    except (ValueError, TypeError):
        return None


async def request_with_policy(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    policy: FeedPolicy,
    headers: Optional[dict[str, str]] = None,
    **kwargs,
) -> httpx.Response:
    """
    Send a request with the vendor's retry policy.

    Args:
        client: httpx AsyncClient instance
        method: HTTP method
        url: URL to request
        policy: FeedPolicy for the vendor
        headers: Optional additional headers (merged with defaults)
        **kwargs: Passed to client.request (json, data, params, content)

    Returns:
        httpx.Response with a 2xx status

    Raises:
        AuthenticationError: 401/403, never retried
        TransientFeedError: Still failing after policy.max_attempts
    """
    hdrs = default_headers()
    if headers:
        hdrs.update(headers)

    last_error = ""

    for attempt in range(1, policy.max_attempts + 1):
        retry_after = None
        try:
            resp = await client.request(method, url, headers=hdrs, **kwargs)
        except RETRYABLE_EXC as e:
            last_error = f"{type(e).__name__}: {e}"
        else:
            sc = resp.status_code

            if sc in (401, 403):
                raise AuthenticationError(f"{policy.name}: {sc} for {url}")

            if 200 <= sc < 300:
                return resp

            if sc not in RETRYABLE_STATUS and not 500 <= sc < 600:
                # 4xx other than auth/rate limit will not improve on retry
                raise TransientFeedError(f"{policy.name}: status {sc} for {url}")

            last_error = f"status {sc}"
            if sc == 429:
                retry_after = _retry_after(resp)

        if attempt < policy.max_attempts:
            sleep_s = policy.backoff(attempt, retry_after)
            metrics.record_feed_retry(policy.name)
            logger.warning(
                f"{policy.name}: {last_error} for {url}, retrying in {sleep_s:.1f}s "
                f"(attempt {attempt}/{policy.max_attempts})"
            )
            await asyncio.sleep(sleep_s)

    raise TransientFeedError(
        f"{policy.name}: {last_error} for {url} after {policy.max_attempts} attempts"
    )
