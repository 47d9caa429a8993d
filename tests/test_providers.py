"""Tests for provider adapters and the shared HTTP helper."""

import httpx
import pytest

from dealfinder.ingest.http_client import (
    BlockedError,
    PermanentURLError,
    RateLimitedError,
    SourcePolicy,
    TransientFetchError,
    fetch_json,
)
from dealfinder.ingest.providers.scraper_api import ScraperApiProvider, listing_from_scraper
from dealfinder.ingest.providers.serpapi import SerpApiProvider, listing_from_serpapi
from dealfinder.ingest.providers.vendor_catalog import VendorCatalogProvider, listing_from_vendor
from dealfinder.ingest.registry import ProviderRegistry

FAST = SourcePolicy(name="test", max_attempts=2, backoff_base=0.0)


def client_for(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestAdapters:
    """Test upstream shapes mapped to RawListing."""

    def test_serpapi_item(self):
        listing = listing_from_serpapi(
            {
                "title": " Apple iPhone 15 ",
                "price": "$799.00",
                "extracted_price": 799.0,
                "source": "Amazon.com",
                "product_link": "https://www.google.com/shopping/product/1",
                "thumbnail": "https://img/1.jpg",
                "rating": 4.6,
                "reviews": 1200,
            }
        )
        assert listing.title == "Apple iPhone 15"
        assert listing.price == "$799.00"
        assert listing.link == "https://www.google.com/shopping/product/1"
        assert listing.rating == "4.6"
        assert listing.reviews == "1200"
        assert listing.provider == "serpapi"

    def test_serpapi_falls_back_to_extracted_price(self):
        listing = listing_from_serpapi({"title": "x", "extracted_price": 12.5, "source": "eBay"})
        assert listing.price == 12.5
        assert listing.link == ""

    def test_scraper_item(self):
        listing = listing_from_scraper(
            {"name": "PS5 Slim", "price": "₦ 650,000", "store": "Jumia", "url": "/ps5", "thumbnail": "t.jpg"}
        )
        assert listing.title == "PS5 Slim"
        assert listing.source == "Jumia"
        assert listing.link == "/ps5"
        assert listing.image == "t.jpg"

    def test_vendor_item(self):
        listing = listing_from_vendor(
            {"_id": "abc123", "name": "Tecno Camon 20", "price": 185000, "images": ["a.jpg", "b.jpg"]},
            "https://www.sonofanton.live/product/",
        )
        assert listing.link == "https://www.sonofanton.live/product/abc123"
        assert listing.image == "a.jpg"
        assert listing.source == "Vendor"

    def test_vendor_item_without_id(self):
        listing = listing_from_vendor({"name": "Thing", "price": 1, "images": "not-a-list"}, "https://x.ng/p")
        assert listing.link == ""
        assert listing.image is None


@pytest.mark.asyncio
async def test_serpapi_search_sends_params():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(dict(request.url.params))
        body = {"shopping_results": [{"title": "iPhone 15", "price": "$799", "source": "Walmart"}]}
        return httpx.Response(200, json=body)

    provider = SerpApiProvider(api_key="k", base_url="https://serp.test/search", num_results=10, client=client_for(handler))
    listings = await provider.search("iphone 15", region_hint="NG")

    assert seen["q"] == "iphone 15"
    assert seen["engine"] == "google_shopping"
    assert seen["gl"] == "ng"
    assert seen["num"] == "10"
    assert [l.source for l in listings] == ["Walmart"]
    await provider.close()


@pytest.mark.asyncio
async def test_serpapi_without_results_is_empty():
    provider = SerpApiProvider(
        api_key="k",
        base_url="https://serp.test/search",
        client=client_for(lambda request: httpx.Response(200, json={"search_metadata": {}})),
    )
    assert await provider.search("nothing") == []


@pytest.mark.asyncio
async def test_scraper_passes_category():
    seen = {}

    def handler(request):
        seen.update(dict(request.url.params))
        return httpx.Response(200, json={"results": [{"title": "Shoe", "price": "₦ 20,000", "source": "Konga"}]})

    provider = ScraperApiProvider(base_url="https://scraper.test/search", client=client_for(handler))
    listings = await provider.search("sneakers", category_hint="fashion")

    assert seen == {"q": "sneakers", "category": "fashion"}
    assert listings[0].source == "Konga"


@pytest.mark.asyncio
async def test_vendor_accepts_list_or_wrapped_response():
    payloads = iter([[{"id": 1, "name": "A", "price": 10}], {"products": [{"id": 2, "name": "B", "price": 20}]}])

    def handler(request):
        return httpx.Response(200, json=next(payloads))

    provider = VendorCatalogProvider(
        base_url="https://vendor.test/api/products",
        product_base_url="https://www.sonofanton.live/product",
        client=client_for(handler),
    )
    assert [l.title for l in await provider.search("a")] == ["A"]
    assert [l.link for l in await provider.search("b")] == ["https://www.sonofanton.live/product/2"]


class TestFetchJson:
    """Test status-aware errors."""

    @pytest.mark.asyncio
    async def test_404_is_permanent(self):
        async with client_for(lambda r: httpx.Response(404)) as client:
            with pytest.raises(PermanentURLError):
                await fetch_json(client, "https://x.test/a", FAST)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_auth_failures_are_blocked(self, status):
        async with client_for(lambda r: httpx.Response(status)) as client:
            with pytest.raises(BlockedError):
                await fetch_json(client, "https://x.test/a", FAST)

    @pytest.mark.asyncio
    async def test_rate_limit_after_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(429, headers={"Retry-After": "0"})

        async with client_for(handler) as client:
            with pytest.raises(RateLimitedError) as exc_info:
                await fetch_json(client, "https://x.test/a", FAST)

        assert len(calls) == 2
        assert exc_info.value.retry_after == 0

    @pytest.mark.asyncio
    async def test_server_error_retried_then_succeeds(self):
        responses = iter([httpx.Response(503), httpx.Response(200, json={"ok": True})])

        async with client_for(lambda r: next(responses)) as client:
            assert await fetch_json(client, "https://x.test/a", FAST) == {"ok": True}

    @pytest.mark.asyncio
    async def test_invalid_json_is_transient(self):
        async with client_for(lambda r: httpx.Response(200, content=b"<html>")) as client:
            with pytest.raises(TransientFetchError):
                await fetch_json(client, "https://x.test/a", FAST)

    @pytest.mark.asyncio
    async def test_transport_error_after_retries(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with client_for(handler) as client:
            with pytest.raises(TransientFetchError):
                await fetch_json(client, "https://x.test/a", FAST)


def test_registry_lists_builtin_providers():
    assert set(ProviderRegistry.list_providers()) >= {"vendor", "scraper", "serpapi"}


def test_registry_skips_unconfigured(monkeypatch):
    from dealfinder.config import settings

    monkeypatch.setattr(settings, "serpapi_api_key", "")
    monkeypatch.setattr(settings, "scraper_api_url", "")
    monkeypatch.setattr(settings, "vendor_api_url", "https://vendor.test/api/products")

    providers = ProviderRegistry.build_configured()
    assert [p.name for p in providers] == ["vendor"]
