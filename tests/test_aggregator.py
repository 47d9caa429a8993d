"""Tests for provider fan-out and the aggregation pipeline."""

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from dealfinder.ingest.base import ProviderError, RawListing, SourceProvider
from dealfinder.normalize.currency import CurrencyTable
from dealfinder.normalize.links import LinkResolver, is_valid_absolute_url
from dealfinder.rank.relevance import RelevanceScorer
from dealfinder.search.aggregator import Aggregator

AFFILIATES = {"amazon": {"enabled": True, "param": "tag", "value": "sagato-20"}}


class StaticProvider(SourceProvider):
    def __init__(self, name, listings):
        self.name = name
        self.listings = listings
        self.calls = []

    async def search(self, query, region_hint=None, category_hint=None):
        self.calls.append((query, region_hint, category_hint))
        return list(self.listings)


class FailingProvider(SourceProvider):
    name = "failing"

    async def search(self, query, region_hint=None, category_hint=None):
        raise ProviderError("upstream 503")


class BrokenProvider(SourceProvider):
    name = "broken"

    async def search(self, query, region_hint=None, category_hint=None):
        raise KeyError("unexpected shape")


class SlowProvider(SourceProvider):
    name = "slow"

    async def search(self, query, region_hint=None, category_hint=None):
        await asyncio.sleep(5)
        return [RawListing(title="iPhone 15 late", price="$1", source="Amazon", link="https://www.amazon.com/x")]


def make_aggregator(providers, **kwargs) -> Aggregator:
    table = CurrencyTable(base_currency="USD", rates={"NGN": 1500}, last_updated=datetime.utcnow())
    return Aggregator(
        providers=providers,
        currency_table=table,
        link_resolver=LinkResolver(affiliate_programs=AFFILIATES),
        scorer=RelevanceScorer(threshold=0.4, accessory_penalty=0.2, accessory_keywords=["case"]),
        provider_timeout=kwargs.pop("provider_timeout", 1.0),
        ai_batch_size=kwargs.pop("ai_batch_size", 20),
        ai_enabled=kwargs.pop("ai_enabled", True),
        **kwargs,
    )


FOREIGN = [
    RawListing(title="Apple iPhone 15 128GB", price="$799.00", source="Amazon", link="https://www.amazon.com/dp/B1"),
    RawListing(title="Apple iPhone 15 128GB", price="$799.00", source="Amazon", link="https://www.amazon.com/dp/B1"),
    RawListing(title="iPhone 15 Clear Case", price="$9.99", source="Amazon", link="https://www.amazon.com/dp/C1"),
    RawListing(title="iPhone 15 Refurb", price="$450", source="Random Gadget Hub", link="#"),
    RawListing(title="Samsung Galaxy S24", price="$700", source="Walmart", link="https://www.walmart.com/ip/1"),
]

REGIONAL = [
    RawListing(title="iPhone 15 256GB", price="₦ 1,250,000", source="Jumia", link=""),
    RawListing(title="iPhone 15 Pro", price="Call for price", source="Konga", link="/iphone-15-pro"),
    RawListing(title="   ", price="₦ 900,000", source="Jiji", link="https://jiji.ng/x"),
]


@pytest.mark.asyncio
async def test_pipeline_filters_and_normalizes():
    foreign = StaticProvider("serpapi", FOREIGN)
    regional = StaticProvider("scraper", REGIONAL)
    aggregator = make_aggregator([foreign, regional])

    result = await aggregator.aggregate("iphone 15", region_hint="NG", category_hint="gadget")

    assert foreign.calls == [("iphone 15", "NG", "gadget")]
    assert result.raw_count == 8
    assert result.dropped_invalid == 2  # blank title, unparsable price
    assert result.dropped_no_link == 1  # unknown retailer with placeholder link
    assert result.dropped_irrelevant == 2  # case accessory, Galaxy
    assert result.duplicates_removed == 1
    assert result.failed_providers == []
    assert len(result) <= result.raw_count

    by_source = {d.source: d for d in result.deals}
    assert set(by_source) == {"Amazon", "Jumia"}

    amazon = by_source["Amazon"]
    assert str(amazon.price) == "1198500.00"
    assert amazon.currency == "NGN"
    assert amazon.original_currency == "USD"
    assert amazon.link == "https://www.amazon.com/dp/B1?tag=sagato-20"
    assert amazon.is_regional_match is False
    assert amazon.rating == "N/A"

    jumia = by_source["Jumia"]
    assert str(jumia.price) == "1250000"
    assert jumia.link.startswith("https://www.jumia.com.ng/catalog/?q=")
    assert jumia.is_regional_match is True

    for deal in result.deals:
        assert is_valid_absolute_url(deal.link)
        assert deal.relevance >= 0.4


@pytest.mark.asyncio
async def test_failing_and_slow_providers_are_isolated():
    good = StaticProvider("serpapi", FOREIGN[:1])
    aggregator = make_aggregator(
        [FailingProvider(), BrokenProvider(), SlowProvider(), good],
        provider_timeout=0.05,
    )

    result = await aggregator.aggregate("iphone 15")

    assert sorted(result.failed_providers) == ["broken", "failing", "slow"]
    assert [d.title for d in result.deals] == ["Apple iPhone 15 128GB"]


@pytest.mark.asyncio
async def test_no_providers_yields_empty_set():
    result = await make_aggregator([]).aggregate("iphone 15")
    assert result.deals == []
    assert result.raw_count == 0


@pytest.mark.asyncio
async def test_currency_refresh_failure_is_fail_open():
    provider = StaticProvider("serpapi", FOREIGN[:1])
    table = MagicMock()
    table.ensure_fresh = AsyncMock(side_effect=RuntimeError("rate api down"))
    aggregator = make_aggregator([provider])
    aggregator.currency_table = table

    result = await aggregator.aggregate("iphone 15")
    assert len(result.deals) == 1


def _many_listings(count):
    return [
        RawListing(
            title=f"iPhone 15 variant {i}",
            price=f"${100 + i}",
            source="Amazon",
            link=f"https://www.amazon.com/dp/{i}",
        )
        for i in range(count)
    ]


def _assist(**kwargs):
    assist = MagicMock()
    assist.available = True
    assist.rerank = AsyncMock(**kwargs)
    return assist


@pytest.mark.asyncio
async def test_ai_assist_filters_top_batch():
    provider = StaticProvider("serpapi", _many_listings(3))

    async def keep_second(query, deals):
        return [deals[1]]

    assist = _assist(side_effect=keep_second)
    aggregator = make_aggregator([provider], relevance_assist=assist, ai_batch_size=2)

    result = await aggregator.aggregate("iphone 15")

    assert assist.rerank.await_count == 1
    sent_query, sent_deals = assist.rerank.await_args.args
    assert sent_query == "iphone 15"
    assert len(sent_deals) == 2
    assert result.ai_reranked is True
    assert [d.title for d in result.deals] == ["iPhone 15 variant 1", "iPhone 15 variant 2"]


@pytest.mark.asyncio
async def test_ai_assist_failure_falls_back():
    provider = StaticProvider("serpapi", _many_listings(3))
    assist = _assist(side_effect=RuntimeError("LLM unavailable"))
    aggregator = make_aggregator([provider], relevance_assist=assist, ai_batch_size=2)

    result = await aggregator.aggregate("iphone 15")

    assert result.ai_reranked is False
    assert len(result.deals) == 3


@pytest.mark.asyncio
async def test_ai_assist_result_outside_batch_is_discarded(make_deal):
    provider = StaticProvider("serpapi", _many_listings(3))
    assist = _assist(return_value=[make_deal(title="Invented by the model")])
    aggregator = make_aggregator([provider], relevance_assist=assist, ai_batch_size=2)

    result = await aggregator.aggregate("iphone 15")

    assert result.ai_reranked is False
    assert "Invented by the model" not in [d.title for d in result.deals]


@pytest.mark.asyncio
async def test_ai_assist_skipped_for_small_sets():
    provider = StaticProvider("serpapi", _many_listings(2))
    assist = _assist(return_value=[])
    aggregator = make_aggregator([provider], relevance_assist=assist, ai_batch_size=2)

    await aggregator.aggregate("iphone 15")

    assist.rerank.assert_not_awaited()
