"""Provider registry: builds the configured set of source providers."""

import logging
from typing import Type

from dealfinder.config import settings
from dealfinder.ingest.base import SourceProvider
from dealfinder.ingest.providers.scraper_api import ScraperApiProvider
from dealfinder.ingest.providers.serpapi import SerpApiProvider
from dealfinder.ingest.providers.vendor_catalog import VendorCatalogProvider

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Registry for source provider implementations."""

    _providers: dict[str, Type[SourceProvider]] = {
        "vendor": VendorCatalogProvider,
        "scraper": ScraperApiProvider,
        "serpapi": SerpApiProvider,
    }

    @classmethod
    def register_provider(cls, name: str, provider_class: Type[SourceProvider]) -> None:
        """Register a new provider class."""
        cls._providers[name] = provider_class
        logger.info(f"Registered provider: {name}")

    @classmethod
    def list_providers(cls) -> list[str]:
        """List registered provider names."""
        return list(cls._providers.keys())

    @classmethod
    def is_configured(cls, name: str) -> bool:
        """Check whether the settings carry what a provider needs to run."""
        if name == "vendor":
            return bool(settings.vendor_api_url)
        if name == "scraper":
            return bool(settings.scraper_api_url)
        if name == "serpapi":
            return bool(settings.serpapi_api_key)
        return True

    @classmethod
    def build_configured(cls) -> list[SourceProvider]:
        """Instantiate every registered provider whose settings are present."""
        providers: list[SourceProvider] = []
        for name, provider_class in cls._providers.items():
            if not cls.is_configured(name):
                logger.info(f"Provider '{name}' not configured, skipping")
                continue
            providers.append(provider_class())
        if not providers:
            logger.warning("No source providers configured; searches will return no results")
        return providers
