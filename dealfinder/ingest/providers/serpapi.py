"""SerpApi Google Shopping provider (foreign retailers)."""

import logging
from typing import Any, Optional

import httpx

from dealfinder.config import settings
from dealfinder.ingest.base import RawListing, SourceProvider, text_or_none
from dealfinder.ingest.http_client import SourcePolicy, fetch_json

logger = logging.getLogger(__name__)


def listing_from_serpapi(item: dict[str, Any]) -> RawListing:
    """Map one `shopping_results` entry to a RawListing."""
    # `price` is display text ("$1,299.99"); `extracted_price` drops the currency
    price = item.get("price")
    if price is None:
        price = item.get("extracted_price")
    return RawListing(
        title=str(item.get("title") or "").strip(),
        price=price,
        source=str(item.get("source") or "").strip(),
        link=str(item.get("link") or item.get("product_link") or "").strip(),
        image=text_or_none(item.get("thumbnail")),
        rating=text_or_none(item.get("rating")),
        reviews=text_or_none(item.get("reviews")),
        provider="serpapi",
    )


class SerpApiProvider(SourceProvider):
    """Google Shopping results through SerpApi."""

    name = "serpapi"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        num_results: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.serpapi_api_key
        self.base_url = base_url or settings.serpapi_base_url
        self.num_results = num_results or settings.serpapi_num_results
        self.policy = SourcePolicy(
            name=self.name,
            max_attempts=settings.provider_max_attempts,
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
        params = {
            "q": query,
            "api_key": self.api_key,
            "engine": "google_shopping",
            "num": self.num_results,
        }
        if region_hint:
            params["gl"] = region_hint.lower()

        client = await self._get_client()
        data = await fetch_json(client, self.base_url, self.policy, params=params)

        results = (data or {}).get("shopping_results") or []
        listings = [listing_from_serpapi(item) for item in results if isinstance(item, dict)]
        logger.debug(f"SerpApi returned {len(listings)} listings for '{query}'")
        return listings
