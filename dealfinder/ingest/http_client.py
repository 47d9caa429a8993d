"""Shared HTTP helper with per-source policies and status-aware error handling."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from dealfinder.ingest.base import ProviderError

logger = logging.getLogger(__name__)

# Retryable exceptions (transport errors)
RETRYABLE_EXC = (
    httpx.ReadTimeout,
    httpx.ConnectTimeout,
    httpx.ConnectError,
    httpx.RemoteProtocolError,
    httpx.PoolTimeout,
)


@dataclass(frozen=True)
class SourcePolicy:
    """Per-source HTTP request policy."""

    name: str
    max_attempts: int = 2
    timeout: httpx.Timeout = None  # Will be set to default if None
    backoff_base: float = 1.0

    def __post_init__(self):
        if self.timeout is None:
            object.__setattr__(
                self,
                'timeout',
                httpx.Timeout(connect=5.0, read=20.0, write=5.0, pool=5.0),
            )


class BlockedError(ProviderError):
    """Raised when the upstream rejects our credentials or blocks us (401/403)."""
    pass


class PermanentURLError(ProviderError):
    """Raised when the endpoint does not exist (404)."""
    pass


class TransientFetchError(ProviderError):
    """Raised when a fetch fails after retries (5xx, timeouts, etc.)."""
    pass


class RateLimitedError(ProviderError):
    """Raised when rate limited (429)."""

    def __init__(self, retry_after: Optional[int] = None):
        super().__init__("Rate limited")
        self.retry_after = retry_after


def default_headers() -> dict[str, str]:
    """Get default JSON API headers."""
    return {
        "User-Agent": "DealFinder/0.1 (+https://www.sonofanton.live)",
        "Accept": "application/json",
    }


def _backoff(policy: SourcePolicy, attempt: int) -> float:
    return policy.backoff_base * (2 ** (attempt - 1)) + random.random() * policy.backoff_base


async def fetch_json(
    client: httpx.AsyncClient,
    url: str,
    policy: SourcePolicy,
    params: Optional[dict[str, Any]] = None,
    headers: Optional[dict[str, str]] = None,
) -> Any:
    """
    GET a JSON document with per-source policy and status-aware error handling.

    Args:
        client: httpx AsyncClient instance
        url: URL to fetch
        policy: SourcePolicy configuration
        params: Query string parameters
        headers: Optional additional headers (merged with defaults)

    Returns:
        Decoded JSON body

    Raises:
        BlockedError: 401/403
        PermanentURLError: 404
        RateLimitedError: 429 on the final attempt
        TransientFetchError: 5xx, transport errors or invalid JSON after retries
    """
    hdrs = default_headers()
    if headers:
        hdrs.update(headers)

    last_exc: Exception | None = None

    for attempt in range(1, policy.max_attempts + 1):
        final = attempt == policy.max_attempts
        try:
            resp = await client.get(
                url,
                params=params,
                headers=hdrs,
                timeout=policy.timeout,
                follow_redirects=True,
            )
        except RETRYABLE_EXC as e:
            last_exc = e
            if final:
                raise TransientFetchError(
                    f"{policy.name}: transport error after {policy.max_attempts} attempts"
                ) from e
            sleep_s = _backoff(policy, attempt)
            logger.warning(
                f"{policy.name}: transport error ({type(e).__name__}), "
                f"retrying in {sleep_s:.1f}s (attempt {attempt}/{policy.max_attempts})"
            )
            await asyncio.sleep(sleep_s)
            continue

        sc = resp.status_code

        if sc == 404:
            raise PermanentURLError(f"{policy.name}: 404 for {url}")

        if sc in (401, 403):
            raise BlockedError(f"{policy.name}: {sc} for {url}")

        if sc == 429:
            retry_after = resp.headers.get("Retry-After")
            retry_seconds = None
            if retry_after:
                try:
                    retry_seconds = int(retry_after)
                except (ValueError, TypeError):
                    pass
            last_exc = RateLimitedError(retry_after=retry_seconds)
            if final:
                raise last_exc
            sleep_s = float(retry_seconds) if retry_seconds is not None else _backoff(policy, attempt)
            logger.warning(
                f"{policy.name}: rate limited (429), retrying in {sleep_s:.1f}s "
                f"(attempt {attempt}/{policy.max_attempts})"
            )
            await asyncio.sleep(sleep_s)
            continue

        if 200 <= sc < 300:
            try:
                return resp.json()
            except ValueError as e:
                raise TransientFetchError(f"{policy.name}: invalid JSON from {url}") from e

        last_exc = TransientFetchError(f"{policy.name}: status {sc} for {url}")
        if final:
            raise TransientFetchError(
                f"{policy.name}: status {sc} for {url} after {policy.max_attempts} attempts"
            )
        sleep_s = _backoff(policy, attempt)
        logger.warning(
            f"{policy.name}: status {sc}, retrying in {sleep_s:.1f}s "
            f"(attempt {attempt}/{policy.max_attempts})"
        )
        await asyncio.sleep(sleep_s)

    raise TransientFetchError(
        f"{policy.name}: failed after {policy.max_attempts} attempts: {url}"
    ) from last_exc
