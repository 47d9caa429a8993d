"""Tests for the HTTP routes."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fastapi import FastAPI

from dealfinder.ai.shopping_assist import Recommendation
from dealfinder.api.routes import notifications, search, watches
from dealfinder.search.service import STATUS_NO_RESULTS, STATUS_OK, SearchOutcome
from dealfinder.watches.store import WatchStore


@pytest.fixture
def store(session_factory):
    return WatchStore(session_factory)


@pytest.fixture
def search_service():
    service = MagicMock()
    service.search = AsyncMock()
    return service


@pytest.fixture
def app(store, search_service):
    app = FastAPI()
    app.include_router(search.router)
    app.include_router(watches.router)
    app.include_router(notifications.router)
    app.state.services = SimpleNamespace(watch_store=store, search_service=search_service)
    return app


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


OWNER = {"X-Owner-Id": "user-1"}
OTHER = {"X-Owner-Id": "user-2"}


@pytest.mark.asyncio
async def test_search_returns_ranked_deals(client, search_service, make_deal):
    search_service.search.return_value = SearchOutcome(
        query="iphone 15",
        status=STATUS_OK,
        deals=[make_deal(title="iPhone 15", price="1250000", source="Jumia")],
        total_valid=1,
    )

    response = await client.get("/search", params={"q": "iPhone 15", "region": "NG"})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["deals"][0]["price"] == 1250000.0
    search_service.search.assert_awaited_once_with(
        "iPhone 15", region_hint="NG", category_hint=None, recommend=True
    )
    assert body["recommendation"] is None


@pytest.mark.asyncio
async def test_search_includes_recommendation(client, search_service, make_deal):
    deal = make_deal(title="iPhone 15", price="1250000", source="Jumia")
    search_service.search.return_value = SearchOutcome(
        query="iphone 15",
        status=STATUS_OK,
        deals=[deal],
        total_valid=1,
        category="gadget",
        recommendation=Recommendation(deal=deal, reason="Lowest price from a trusted store"),
    )

    body = (await client.get("/search", params={"q": "iPhone 15"})).json()

    assert body["category"] == "gadget"
    assert body["recommendation"]["deal"]["title"] == "iPhone 15"
    assert body["recommendation"]["reason"] == "Lowest price from a trusted store"
    assert body["recommendation"]["ai_generated"] is True


@pytest.mark.asyncio
async def test_search_no_results_is_not_an_error(client, search_service):
    search_service.search.return_value = SearchOutcome(query="zzz", status=STATUS_NO_RESULTS)

    response = await client.get("/search", params={"q": "zzz"})

    assert response.status_code == 200
    assert response.json()["status"] == "no_results"
    assert response.json()["deals"] == []


@pytest.mark.asyncio
async def test_watch_lifecycle(client):
    created = await client.post(
        "/watches",
        json={"item_name": "PS5", "search_query": "ps5 slim", "frequency_hours": 0.2, "max_price": "700000"},
        headers=OWNER,
    )
    assert created.status_code == 201
    watch = created.json()
    assert watch["frequency_hours"] == 1.0

    listed = await client.get("/watches", headers=OWNER)
    assert [w["id"] for w in listed.json()] == [watch["id"]]

    paused = await client.post(f"/watches/{watch['id']}/pause", headers=OWNER)
    assert paused.json()["is_active"] is False

    active = await client.get("/watches", params={"active_only": "true"}, headers=OWNER)
    assert active.json() == []

    updated = await client.patch(f"/watches/{watch['id']}", json={"frequency_hours": 24}, headers=OWNER)
    assert updated.json()["frequency_hours"] == 24.0

    deleted = await client.delete(f"/watches/{watch['id']}", headers=OWNER)
    assert deleted.status_code == 204
    missing = await client.get(f"/watches/{watch['id']}", headers=OWNER)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_other_owner_is_forbidden(client, store):
    watch = await store.create("user-1", "PS5", "ps5")

    assert (await client.get(f"/watches/{watch.id}", headers=OTHER)).status_code == 403
    assert (await client.delete(f"/watches/{watch.id}", headers=OTHER)).status_code == 403


@pytest.mark.asyncio
async def test_invalid_bounds_rejected(client):
    response = await client.post(
        "/watches",
        json={"item_name": "PS5", "search_query": "ps5", "min_price": "500", "max_price": "100"},
        headers=OWNER,
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_owner_header_required(client):
    assert (await client.get("/watches")).status_code == 422


@pytest.mark.asyncio
async def test_notifications_mark_read(client, store, make_deal):
    watch = await store.create("user-1", "PS5", "ps5")
    notification = await store.add_notification(watch, [make_deal(title="PS5 Slim")], "1 new deal for PS5")

    listed = await client.get("/notifications", headers=OWNER)
    assert listed.json()[0]["deals"][0]["title"] == "PS5 Slim"

    forbidden = await client.post(f"/notifications/{notification.id}/read", headers=OTHER)
    assert forbidden.status_code == 403

    read = await client.post(f"/notifications/{notification.id}/read", headers=OWNER)
    assert read.json()["is_read"] is True

    unread = await client.get("/notifications", params={"unread_only": "true"}, headers=OWNER)
    assert unread.json() == []
