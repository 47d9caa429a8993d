"""In-platform vendor catalog provider (primary local listings)."""

import logging
from typing import Any, Optional

import httpx

from dealfinder.config import settings
from dealfinder.ingest.base import RawListing, SourceProvider, text_or_none
from dealfinder.ingest.http_client import SourcePolicy, fetch_json

logger = logging.getLogger(__name__)

VENDOR_SOURCE = "Vendor"


def listing_from_vendor(item: dict[str, Any], product_base_url: str) -> RawListing:
    """Map one vendor catalog product to a RawListing."""
    product_id = item.get("id") or item.get("_id")
    link = f"{product_base_url.rstrip('/')}/{product_id}" if product_id else ""
    image = item.get("image")
    images = item.get("images")
    if not image and isinstance(images, list) and images:
        image = images[0]
    return RawListing(
        title=str(item.get("name") or item.get("title") or "").strip(),
        price=item.get("price"),
        source=VENDOR_SOURCE,
        link=link,
        image=text_or_none(image),
        rating=text_or_none(item.get("rating")),
        reviews=text_or_none(item.get("reviews")),
        provider="vendor",
    )


class VendorCatalogProvider(SourceProvider):
    """Products listed by vendors on the platform itself, priced in Naira."""

    name = "vendor"

    def __init__(
        self,
        base_url: Optional[str] = None,
        product_base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url or settings.vendor_api_url
        self.product_base_url = product_base_url or settings.vendor_product_base_url
        self.policy = SourcePolicy(name=self.name, max_attempts=settings.provider_max_attempts)
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
        client = await self._get_client()
        data = await fetch_json(client, self.base_url, self.policy, params={"q": query})

        if isinstance(data, list):
            products = data
        else:
            products = (data or {}).get("products") or []
        return [
            listing_from_vendor(item, self.product_base_url)
            for item in products
            if isinstance(item, dict)
        ]
