"""
Fan-out aggregation of listings from every configured source provider.

Each provider call is isolated by its own timeout and error handling; the
combined raw listings are normalized, link-resolved, scored and deduplicated
into a CandidateSet.
"""

import asyncio
import logging
import time
from typing import Optional

from dealfinder import metrics
from dealfinder.ai.relevance_assist import LLMRelevanceAssist
from dealfinder.config import settings
from dealfinder.ingest.base import ProviderError, RawListing, SourceProvider
from dealfinder.normalize.currency import CurrencyTable
from dealfinder.normalize.links import LinkResolver
from dealfinder.normalize.processor import NormalizationError, PriceNormalizer
from dealfinder.rank.blender import RegionPolicy
from dealfinder.rank.dedupe import dedupe_deals
from dealfinder.rank.models import NOT_AVAILABLE, CandidateSet, NormalizedDeal
from dealfinder.rank.relevance import RelevanceScorer

logger = logging.getLogger(__name__)


class Aggregator:
    """Drives providers -> normalizer -> link resolver -> scorer -> deduplicator."""

    def __init__(
        self,
        providers: list[SourceProvider],
        currency_table: CurrencyTable,
        normalizer: Optional[PriceNormalizer] = None,
        link_resolver: Optional[LinkResolver] = None,
        scorer: Optional[RelevanceScorer] = None,
        region_policy: Optional[RegionPolicy] = None,
        relevance_assist: Optional[LLMRelevanceAssist] = None,
        provider_timeout: Optional[float] = None,
        ai_batch_size: Optional[int] = None,
        ai_enabled: Optional[bool] = None,
    ):
        self.providers = providers
        self.currency_table = currency_table
        self.normalizer = normalizer or PriceNormalizer(currency_table)
        self.link_resolver = link_resolver or LinkResolver()
        self.scorer = scorer or RelevanceScorer()
        self.region_policy = region_policy or RegionPolicy()
        self.relevance_assist = relevance_assist
        self.provider_timeout = (
            provider_timeout if provider_timeout is not None else settings.provider_timeout_seconds
        )
        self.ai_batch_size = ai_batch_size if ai_batch_size is not None else settings.ai_rerank_batch_size
        self.ai_enabled = ai_enabled if ai_enabled is not None else settings.ai_rerank_enabled

    async def _call_provider(
        self,
        provider: SourceProvider,
        query: str,
        region_hint: Optional[str],
        category_hint: Optional[str],
    ) -> tuple[list[RawListing], bool]:
        """Call one provider; any failure contributes zero listings."""
        start = time.monotonic()
        try:
            listings = await asyncio.wait_for(
                provider.search(query, region_hint=region_hint, category_hint=category_hint),
                timeout=self.provider_timeout,
            )
        except asyncio.TimeoutError:
            metrics.record_provider_call(provider.name, "timeout", time.monotonic() - start)
            logger.warning(f"Provider '{provider.name}' timed out after {self.provider_timeout}s")
            return [], False
        except ProviderError as e:
            metrics.record_provider_call(provider.name, "error", time.monotonic() - start)
            logger.warning(f"Provider '{provider.name}' failed: {e}")
            return [], False
        except Exception as e:
            metrics.record_provider_call(provider.name, "error", time.monotonic() - start)
            logger.error(f"Provider '{provider.name}' raised unexpectedly: {e}", exc_info=True)
            return [], False

        listings = list(listings or [])
        status = "success" if listings else "empty"
        metrics.record_provider_call(provider.name, status, time.monotonic() - start, len(listings))
        logger.debug(f"Provider '{provider.name}' returned {len(listings)} listings")
        return listings, True

    def _to_deal(self, listing: RawListing, query: str, candidates: CandidateSet) -> Optional[NormalizedDeal]:
        title = (listing.title or "").strip()
        if not title:
            candidates.dropped_invalid += 1
            return None

        try:
            price = self.normalizer.normalize(listing.price, listing.source)
        except NormalizationError as e:
            logger.debug(f"Dropping '{title[:60]}': {e}")
            candidates.dropped_invalid += 1
            return None

        link = self.link_resolver.resolve(listing.link, title, listing.source)
        if link is None:
            candidates.dropped_no_link += 1
            return None
        link = self.link_resolver.apply_affiliate(link)

        relevance = self.scorer.score(title, query)
        if not self.scorer.is_relevant(relevance, query):
            candidates.dropped_irrelevant += 1
            return None

        return NormalizedDeal(
            title=title,
            price=price.amount,
            currency=price.currency,
            original_price=price.original_amount,
            original_currency=price.original_currency,
            source=listing.source,
            link=link,
            image=listing.image,
            rating=listing.rating or NOT_AVAILABLE,
            reviews=listing.reviews or NOT_AVAILABLE,
            relevance=relevance,
            is_regional_match=self.region_policy.is_local(listing.source),
            provider=listing.provider,
        )

    async def _apply_relevance_assist(
        self, query: str, deals: list[NormalizedDeal]
    ) -> tuple[list[NormalizedDeal], bool]:
        """Filter the top batch with the AI assist; fall back to the input order on any failure."""
        if (
            not self.ai_enabled
            or self.relevance_assist is None
            or not self.relevance_assist.available
            or not query.strip()
            or len(deals) <= self.ai_batch_size
        ):
            return deals, False

        ordered = sorted(deals, key=lambda d: d.relevance, reverse=True)
        batch = ordered[: self.ai_batch_size]
        rest = ordered[self.ai_batch_size:]

        try:
            kept = await self.relevance_assist.rerank(query, batch)
        except Exception as e:
            metrics.ai_rerank_total.labels(status="failed").inc()
            logger.warning(f"AI relevance assist failed, using deterministic order: {e}")
            return deals, False

        batch_ids = {id(d) for d in batch}
        if not kept or any(id(d) not in batch_ids for d in kept):
            metrics.ai_rerank_total.labels(status="discarded").inc()
            logger.info("AI relevance assist returned no usable subset, keeping deterministic order")
            return deals, False

        return kept + rest, True

    async def aggregate(
        self,
        query: str,
        region_hint: Optional[str] = None,
        category_hint: Optional[str] = None,
    ) -> CandidateSet:
        """
        Aggregate deals for a query from all providers.

        Args:
            query: Search query
            region_hint: Region code of the requester
            category_hint: Product category, passed through to providers

        Returns:
            CandidateSet of normalized, relevant, unique deals
        """
        candidates = CandidateSet()

        try:
            await self.currency_table.ensure_fresh()
        except Exception as e:
            logger.warning(f"Currency refresh failed, continuing with current rates: {e}")

        results = await asyncio.gather(
            *(
                self._call_provider(provider, query, region_hint, category_hint)
                for provider in self.providers
            )
        )

        raw: list[RawListing] = []
        for provider, (listings, ok) in zip(self.providers, results):
            if not ok:
                candidates.failed_providers.append(provider.name)
            raw.extend(listings)
        candidates.raw_count = len(raw)

        deals: list[NormalizedDeal] = []
        for listing in raw:
            deal = self._to_deal(listing, query, candidates)
            if deal is not None:
                deals.append(deal)

        deals, candidates.duplicates_removed = dedupe_deals(deals)
        deals, candidates.ai_reranked = await self._apply_relevance_assist(query, deals)
        candidates.deals = deals

        metrics.record_dropped("invalid", candidates.dropped_invalid)
        metrics.record_dropped("no_link", candidates.dropped_no_link)
        metrics.record_dropped("irrelevant", candidates.dropped_irrelevant)
        metrics.record_dropped("duplicate", candidates.duplicates_removed)
        metrics.aggregations_total.labels(outcome="results" if deals else "empty").inc()

        logger.info(f"Aggregated '{query}': {candidates.summary()}")
        return candidates
