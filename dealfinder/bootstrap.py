"""Wire the engine's components together."""

import logging
from dataclasses import dataclass

from dealfinder.ai.llm_service import LLMService
from dealfinder.ai.relevance_assist import LLMRelevanceAssist
from dealfinder.ai.shopping_assist import CategoryDetector, DealRecommender
from dealfinder.config import settings
from dealfinder.ingest.base import SourceProvider
from dealfinder.ingest.registry import ProviderRegistry
from dealfinder.normalize.currency import CurrencyTable, ExchangeRateApiProvider, ExchangeRateStore
from dealfinder.notify.sinks import ChannelRouter, build_notification_sink
from dealfinder.rank.blender import RegionalBlender, RegionPolicy
from dealfinder.search.aggregator import Aggregator
from dealfinder.search.cache import ResultCache
from dealfinder.search.service import SearchService
from dealfinder.watches.store import WatchStore
from dealfinder.worker.watch_runner import WatchRunner

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Long-lived application components."""

    providers: list[SourceProvider]
    currency_provider: ExchangeRateApiProvider
    currency_table: CurrencyTable
    llm: LLMService
    search_service: SearchService
    watch_store: WatchStore
    sink: ChannelRouter
    watch_runner: WatchRunner

    async def close(self) -> None:
        """Release HTTP and API clients."""
        for provider in self.providers:
            try:
                await provider.close()
            except Exception as e:
                logger.warning(f"Error closing provider '{provider.name}': {e}")
        await self.currency_provider.close()
        await self.llm.close()
        await self.sink.close()


def build_services(session_factory) -> Services:
    """Build the configured services on top of a session factory."""
    providers = ProviderRegistry.build_configured()
    currency_provider = ExchangeRateApiProvider()
    currency_table = CurrencyTable(
        provider=currency_provider,
        store=ExchangeRateStore(session_factory),
    )
    llm = LLMService()
    policy = RegionPolicy()
    aggregator = Aggregator(
        providers=providers,
        currency_table=currency_table,
        region_policy=policy,
        relevance_assist=LLMRelevanceAssist(llm),
    )
    search_service = SearchService(
        aggregator=aggregator,
        blender=RegionalBlender(policy=policy),
        cache=ResultCache(session_factory),
        category_detector=CategoryDetector(llm) if settings.ai_category_enabled else None,
        recommender=DealRecommender(llm) if settings.ai_recommendation_enabled else None,
    )
    watch_store = WatchStore(session_factory)
    sink = build_notification_sink()
    watch_runner = WatchRunner(store=watch_store, search_service=search_service, sink=sink)

    logger.info(f"Services built with providers: {[p.name for p in providers]}")
    return Services(
        providers=providers,
        currency_provider=currency_provider,
        currency_table=currency_table,
        llm=llm,
        search_service=search_service,
        watch_store=watch_store,
        sink=sink,
        watch_runner=watch_runner,
    )
