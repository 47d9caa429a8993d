"""
Search service: cache lookup, aggregation and regional ranking.

Used both by interactive searches and by watch runs.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from dealfinder.ai.shopping_assist import CategoryDetector, DealRecommender, Recommendation
from dealfinder.rank.blender import RegionalBlender
from dealfinder.rank.models import NormalizedDeal
from dealfinder.search.aggregator import Aggregator
from dealfinder.search.cache import ResultCache, normalize_key

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_NO_RESULTS = "no_results"


@dataclass
class SearchOutcome:
    """Result of a search request."""

    query: str
    status: str
    deals: list[NormalizedDeal] = field(default_factory=list)
    total_valid: int = 0
    cached: bool = False
    category: Optional[str] = None
    recommendation: Optional[Recommendation] = None

    @property
    def has_results(self) -> bool:
        return self.status == STATUS_OK

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "status": self.status,
            "deals": [d.to_dict() for d in self.deals],
            "total_valid": self.total_valid,
            "cached": self.cached,
            "category": self.category,
            "recommendation": self.recommendation.to_dict() if self.recommendation else None,
        }


class SearchService:
    """
    High-level search combining the result cache, aggregator and blender.

    The cache is keyed by query text alone, so one stored ranking serves
    requesters from every region. A cache hit is re-blended for the
    requester's region before it is returned.
    """

    def __init__(
        self,
        aggregator: Aggregator,
        blender: Optional[RegionalBlender] = None,
        cache: Optional[ResultCache] = None,
        category_detector: Optional[CategoryDetector] = None,
        recommender: Optional[DealRecommender] = None,
    ):
        self.aggregator = aggregator
        self.blender = blender or RegionalBlender(policy=aggregator.region_policy)
        self.cache = cache
        self.category_detector = category_detector
        self.recommender = recommender

    async def _detect_category(self, query: str) -> Optional[str]:
        if self.category_detector is None:
            return None
        try:
            return await self.category_detector.detect(query)
        except Exception as e:
            logger.warning(f"Category detection failed for '{query}': {e}")
            return None

    async def _recommend(self, query: str, deals: list[NormalizedDeal]) -> Optional[Recommendation]:
        if self.recommender is None:
            return None
        try:
            return await self.recommender.recommend(query, deals)
        except Exception as e:
            logger.warning(f"Recommendation failed for '{query}': {e}")
            return None

    async def search(
        self,
        query: str,
        region_hint: Optional[str] = None,
        category_hint: Optional[str] = None,
        use_cache: bool = True,
        recommend: bool = False,
    ) -> SearchOutcome:
        """
        Search for deals.

        Args:
            query: Search query text
            region_hint: Requester region (None = home region)
            category_hint: Optional product category; detected when omitted
            use_cache: Read the cache before aggregating; results are always written
            recommend: Attach a best-deal recommendation

        Returns:
            SearchOutcome with status "ok" or "no_results"
        """
        key = normalize_key(query)

        if use_cache and self.cache is not None:
            cached = await self.cache.get(key)
            if cached is not None and cached.deals:
                logger.debug(f"Cache hit for '{key}'")
                deals = self.blender.blend(cached.deals, region_hint)
                return SearchOutcome(
                    query=key,
                    status=STATUS_OK,
                    deals=deals,
                    total_valid=cached.total_valid,
                    cached=True,
                    category=category_hint,
                    recommendation=await self._recommend(key, deals) if recommend else None,
                )

        if not category_hint:
            category_hint = await self._detect_category(key)

        candidates = await self.aggregator.aggregate(key, region_hint, category_hint)
        if not candidates.deals:
            logger.info(f"No results for '{key}'")
            return SearchOutcome(query=key, status=STATUS_NO_RESULTS, category=category_hint)

        ranked = self.blender.blend(candidates.deals, region_hint)
        total_valid = len(candidates.deals)

        if self.cache is not None:
            await self.cache.put(key, ranked, total_valid)

        return SearchOutcome(
            query=key,
            status=STATUS_OK,
            deals=ranked,
            total_valid=total_valid,
            category=category_hint,
            recommendation=await self._recommend(key, ranked) if recommend else None,
        )
