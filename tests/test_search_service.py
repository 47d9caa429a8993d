"""Tests for the result cache and the search service."""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from dealfinder.rank.blender import RegionalBlender, RegionPolicy
from dealfinder.rank.models import CandidateSet
from dealfinder.search.cache import ResultCache, normalize_key
from dealfinder.search.service import STATUS_NO_RESULTS, STATUS_OK, SearchService


class Clock:
    def __init__(self, start):
        self.current = start

    def __call__(self):
        return self.current


def test_normalize_key():
    assert normalize_key("  iPhone   15\tPro ") == "iphone 15 pro"
    assert normalize_key("") == ""


class TestResultCache:
    """Test TTL semantics and upserts."""

    @pytest.mark.asyncio
    async def test_round_trip(self, session_factory, make_deal, now):
        cache = ResultCache(session_factory, ttl=timedelta(hours=24), clock=Clock(now))
        deals = [make_deal(title="iPhone 15", price="1250000.50", source="Jumia", is_regional_match=True)]

        await cache.put("iPhone 15", deals, total_valid=7)
        cached = await cache.get("  IPHONE 15 ")

        assert cached is not None
        assert cached.total_valid == 7
        assert cached.deals == deals

    @pytest.mark.asyncio
    async def test_expired_row_is_a_miss_but_kept(self, session_factory, make_deal, now):
        clock = Clock(now)
        cache = ResultCache(session_factory, ttl=timedelta(hours=24), clock=clock)
        await cache.put("iphone 15", [make_deal()], total_valid=1)

        clock.current = now + timedelta(hours=23)
        assert await cache.get("iphone 15") is not None

        clock.current = now + timedelta(hours=25)
        assert await cache.get("iphone 15") is None

        # Expired rows are overwritten in place, not duplicated
        await cache.put("iphone 15", [make_deal(title="Fresh")], total_valid=1)
        cached = await cache.get("iphone 15")
        assert [d.title for d in cached.deals] == ["Fresh"]

    @pytest.mark.asyncio
    async def test_last_write_wins(self, session_factory, make_deal, now):
        cache = ResultCache(session_factory, clock=Clock(now))
        await cache.put("ps5", [make_deal(title="First")], total_valid=1)
        await cache.put("PS5", [make_deal(title="Second")], total_valid=2)

        cached = await cache.get("ps5")
        assert [d.title for d in cached.deals] == ["Second"]
        assert cached.total_valid == 2

    @pytest.mark.asyncio
    async def test_store_failure_is_a_miss(self, make_deal):
        def broken_factory():
            raise RuntimeError("database unavailable")

        cache = ResultCache(broken_factory)
        assert await cache.get("iphone 15") is None
        await cache.put("iphone 15", [make_deal()], total_valid=1)


def make_service(candidates, cache=None):
    aggregator = MagicMock()
    aggregator.aggregate = AsyncMock(return_value=candidates)
    policy = RegionPolicy(home_region="NG", primary_sources=["vendor"], secondary_sources=["jumia"])
    blender = RegionalBlender(policy=policy, local_per_foreign=9, max_results=2)
    return SearchService(aggregator=aggregator, blender=blender, cache=cache), aggregator


class TestSearchService:
    """Test cache use, blending and the no-results outcome."""

    @pytest.mark.asyncio
    async def test_fresh_search_is_blended_and_cached(self, make_deal):
        deals = [
            make_deal(title="iPhone 15 a", source="Amazon", price=10),
            make_deal(title="iPhone 15 b", source="Jumia", price=20),
            make_deal(title="iPhone 15 c", source="Vendor", price=30),
        ]
        cache = MagicMock()
        cache.get = AsyncMock(return_value=None)
        cache.put = AsyncMock()
        service, aggregator = make_service(CandidateSet(deals=deals), cache)

        outcome = await service.search("  iPhone 15 ", region_hint="NG")

        aggregator.aggregate.assert_awaited_once_with("iphone 15", "NG", None)
        assert outcome.status == STATUS_OK
        assert outcome.cached is False
        assert [d.source for d in outcome.deals] == ["Vendor", "Jumia"]
        assert outcome.total_valid == 3
        cache.put.assert_awaited_once_with("iphone 15", outcome.deals, 3)

    @pytest.mark.asyncio
    async def test_cache_hit_skips_aggregation(self, make_deal, now):
        cached = MagicMock()
        cached.deals = [make_deal()]
        cached.total_valid = 4
        cache = MagicMock()
        cache.get = AsyncMock(return_value=cached)
        cache.put = AsyncMock()
        service, aggregator = make_service(CandidateSet(), cache)

        outcome = await service.search("iphone 15")

        aggregator.aggregate.assert_not_awaited()
        assert outcome.cached is True
        assert outcome.total_valid == 4

    @pytest.mark.asyncio
    async def test_bypassing_cache_still_writes(self, make_deal):
        cache = MagicMock()
        cache.get = AsyncMock()
        cache.put = AsyncMock()
        service, aggregator = make_service(CandidateSet(deals=[make_deal()]), cache)

        await service.search("iphone 15", use_cache=False)

        cache.get.assert_not_awaited()
        cache.put.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_no_results_outcome(self):
        cache = MagicMock()
        cache.get = AsyncMock(return_value=None)
        cache.put = AsyncMock()
        service, _ = make_service(CandidateSet(raw_count=5, dropped_irrelevant=5), cache)

        outcome = await service.search("unobtainium")

        assert outcome.status == STATUS_NO_RESULTS
        assert outcome.deals == []
        assert not outcome.has_results
        cache.put.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_expired_cache_triggers_fresh_aggregation(self, session_factory, make_deal, now):
        clock = Clock(now)
        cache = ResultCache(session_factory, ttl=timedelta(hours=24), clock=clock)
        await cache.put("iphone 15", [make_deal(title="Old")], total_valid=1)
        clock.current = now + timedelta(hours=25)

        service, aggregator = make_service(CandidateSet(deals=[make_deal(title="New")]), cache)
        outcome = await service.search("iphone 15")

        aggregator.aggregate.assert_awaited_once()
        assert [d.title for d in outcome.deals] == ["New"]
        assert outcome.cached is False


class TestSearchAssists:
    """Test category detection, recommendations and per-region cache hits."""

    @pytest.mark.asyncio
    async def test_missing_category_is_detected(self, make_deal):
        service, aggregator = make_service(CandidateSet(deals=[make_deal()]))
        service.category_detector = MagicMock()
        service.category_detector.detect = AsyncMock(return_value="gadget")

        outcome = await service.search("iphone 15")

        aggregator.aggregate.assert_awaited_once_with("iphone 15", None, "gadget")
        assert outcome.category == "gadget"

    @pytest.mark.asyncio
    async def test_given_category_skips_detection(self, make_deal):
        service, aggregator = make_service(CandidateSet(deals=[make_deal()]))
        service.category_detector = MagicMock()
        service.category_detector.detect = AsyncMock(return_value="gadget")

        await service.search("iphone 15", category_hint="fashion")

        service.category_detector.detect.assert_not_awaited()
        aggregator.aggregate.assert_awaited_once_with("iphone 15", None, "fashion")

    @pytest.mark.asyncio
    async def test_detection_failure_does_not_block_search(self, make_deal):
        service, aggregator = make_service(CandidateSet(deals=[make_deal()]))
        service.category_detector = MagicMock()
        service.category_detector.detect = AsyncMock(side_effect=RuntimeError("boom"))

        outcome = await service.search("iphone 15")

        aggregator.aggregate.assert_awaited_once_with("iphone 15", None, None)
        assert outcome.status == STATUS_OK

    @pytest.mark.asyncio
    async def test_recommendation_only_when_requested(self, make_deal):
        deal = make_deal()
        service, _ = make_service(CandidateSet(deals=[deal]))
        service.recommender = MagicMock()
        service.recommender.recommend = AsyncMock(return_value="pick")

        plain = await service.search("iphone 15")
        assert plain.recommendation is None
        service.recommender.recommend.assert_not_awaited()

        recommended = await service.search("iphone 15", recommend=True)
        assert recommended.recommendation == "pick"
        service.recommender.recommend.assert_awaited_once_with("iphone 15", [deal])

    @pytest.mark.asyncio
    async def test_recommender_failure_is_ignored(self, make_deal):
        service, _ = make_service(CandidateSet(deals=[make_deal()]))
        service.recommender = MagicMock()
        service.recommender.recommend = AsyncMock(side_effect=RuntimeError("boom"))

        outcome = await service.search("iphone 15", recommend=True)

        assert outcome.status == STATUS_OK
        assert outcome.recommendation is None

    @pytest.mark.asyncio
    async def test_cache_hit_is_reblended_for_requester_region(self, make_deal):
        local = [make_deal(title=f"Jumia {i}", source="Jumia", price=100 + i) for i in range(2)]
        foreign = make_deal(title="Amazon 0", source="Amazon", price=50)
        cached = MagicMock()
        cached.deals = [local[0], foreign, local[1]]
        cached.total_valid = 3
        cache = MagicMock()
        cache.get = AsyncMock(return_value=cached)
        cache.put = AsyncMock()
        aggregator = MagicMock()
        aggregator.aggregate = AsyncMock()
        policy = RegionPolicy(home_region="NG", primary_sources=["vendor"], secondary_sources=["jumia"])
        blender = RegionalBlender(policy=policy, local_per_foreign=1, max_results=10)
        service = SearchService(aggregator=aggregator, blender=blender, cache=cache)

        regional = await service.search("iphone 15", region_hint="NG")
        abroad = await service.search("iphone 15", region_hint="US")

        assert [d.title for d in regional.deals] == ["Jumia 0", "Amazon 0", "Jumia 1"]
        assert [d.title for d in abroad.deals] == ["Jumia 0", "Jumia 1", "Amazon 0"]
        assert regional.cached and abroad.cached
        aggregator.aggregate.assert_not_awaited()
