"""Regional retailer scraper service provider (Jumia, Jiji, Konga, Slot)."""

import logging
from typing import Any, Optional

import httpx

from dealfinder.config import settings
from dealfinder.ingest.base import RawListing, SourceProvider, text_or_none
from dealfinder.ingest.http_client import SourcePolicy, fetch_json

logger = logging.getLogger(__name__)


def listing_from_scraper(item: dict[str, Any]) -> RawListing:
    """Map one scraper `results` entry to a RawListing."""
    return RawListing(
        title=str(item.get("title") or item.get("name") or "").strip(),
        price=item.get("price"),
        source=str(item.get("source") or item.get("store") or "").strip(),
        link=str(item.get("link") or item.get("url") or "").strip(),
        image=text_or_none(item.get("image") or item.get("thumbnail")),
        rating=text_or_none(item.get("rating")),
        reviews=text_or_none(item.get("reviews")),
        provider="scraper",
    )


class ScraperApiProvider(SourceProvider):
    """
    Listings from the regional scraper service.

    The service is slow (it scrapes live), so its policy allows a single
    attempt and the aggregator's per-call timeout bounds it.
    """

    name = "scraper"

    def __init__(self, base_url: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url or settings.scraper_api_url
        self.policy = SourcePolicy(
            name=self.name,
            max_attempts=1,
            timeout=httpx.Timeout(connect=5.0, read=settings.provider_timeout_seconds, write=5.0, pool=5.0),
        )
        self._http_client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient()
        return self._http_client

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def search(
        self,
        query: str,
        region_hint: Optional[str] = None,
        category_hint: Optional[str] = None,
    ) -> list[RawListing]:
        params = {"q": query}
        if category_hint:
            params["category"] = category_hint

        client = await self._get_client()
        data = await fetch_json(client, self.base_url, self.policy, params=params)

        results = (data or {}).get("results") or []
        return [listing_from_scraper(item) for item in results if isinstance(item, dict)]
