"""Regional blending: local sources first without starving foreign ones."""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from dealfinder.config import settings
from dealfinder.rank.models import NormalizedDeal

logger = logging.getLogger(__name__)


@dataclass
class Buckets:
    """Deals partitioned by source class."""

    primary: list[NormalizedDeal] = field(default_factory=list)
    secondary: dict[str, list[NormalizedDeal]] = field(default_factory=dict)
    foreign: list[NormalizedDeal] = field(default_factory=list)


class RegionPolicy:
    """Source classification tables for the home region."""

    def __init__(
        self,
        home_region: Optional[str] = None,
        primary_sources: Optional[list[str]] = None,
        secondary_sources: Optional[list[str]] = None,
    ):
        self.home_region = (home_region or settings.home_region).upper()
        self.primary_sources = [
            s.lower() for s in (primary_sources if primary_sources is not None else settings.primary_local_sources)
        ]
        self.secondary_sources = [
            s.lower()
            for s in (secondary_sources if secondary_sources is not None else settings.secondary_local_sources)
        ]

    def secondary_bucket_for(self, source: str) -> Optional[str]:
        source_lower = (source or "").lower()
        for keyword in self.secondary_sources:
            if keyword in source_lower:
                return keyword
        return None

    def is_primary(self, source: str) -> bool:
        source_lower = (source or "").lower()
        return any(keyword in source_lower for keyword in self.primary_sources)

    def is_local(self, source: str) -> bool:
        """True for in-platform vendors and regional retailers."""
        return self.is_primary(source) or self.secondary_bucket_for(source) is not None

    def is_regional_request(self, region_hint: Optional[str]) -> bool:
        """No hint means the home region."""
        if not region_hint or not region_hint.strip():
            return True
        return region_hint.strip().upper() == self.home_region


class RegionalBlender:
    """
    Orders candidates by bucket, relevance and price.

    Regional requests get the primary bucket first, then up to K secondary
    deals for every foreign deal. Other requests get local deals then foreign.
    """

    def __init__(
        self,
        policy: Optional[RegionPolicy] = None,
        local_per_foreign: Optional[int] = None,
        max_results: Optional[int] = None,
        tie_threshold: Optional[float] = None,
    ):
        self.policy = policy or RegionPolicy()
        self.local_per_foreign = (
            local_per_foreign if local_per_foreign is not None else settings.blend_local_per_foreign
        )
        self.max_results = max_results if max_results is not None else settings.blend_max_results
        self.tie_threshold = tie_threshold if tie_threshold is not None else settings.relevance_tie_threshold

    def relevance_band(self, relevance: float) -> float:
        """Relevance rounded to the tie threshold; deals in one band tie on relevance."""
        if self.tie_threshold <= 0:
            return relevance
        return round(relevance / self.tie_threshold)

    def sort_bucket(self, deals: list[NormalizedDeal]) -> list[NormalizedDeal]:
        """Relevance band descending, then price ascending."""
        return sorted(deals, key=lambda d: (-self.relevance_band(d.relevance), Decimal(d.price)))

    def partition(self, deals: list[NormalizedDeal]) -> Buckets:
        buckets = Buckets(secondary={kw: [] for kw in self.policy.secondary_sources})
        for deal in deals:
            if self.policy.is_primary(deal.source):
                buckets.primary.append(deal)
                continue
            keyword = self.policy.secondary_bucket_for(deal.source)
            if keyword is not None:
                buckets.secondary[keyword].append(deal)
            else:
                buckets.foreign.append(deal)

        buckets.primary = self.sort_bucket(buckets.primary)
        buckets.secondary = {kw: self.sort_bucket(items) for kw, items in buckets.secondary.items()}
        buckets.foreign = self.sort_bucket(buckets.foreign)
        return buckets

    @staticmethod
    def round_robin(groups: list[list[NormalizedDeal]]) -> list[NormalizedDeal]:
        """Take one deal from each group in turn until all are exhausted."""
        combined: list[NormalizedDeal] = []
        longest = max((len(g) for g in groups), default=0)
        for i in range(longest):
            for group in groups:
                if i < len(group):
                    combined.append(group[i])
        return combined

    def interleave(
        self, local: list[NormalizedDeal], foreign: list[NormalizedDeal]
    ) -> list[NormalizedDeal]:
        """Up to K local deals per foreign deal until both lists are exhausted."""
        step = max(1, self.local_per_foreign)
        blended: list[NormalizedDeal] = []
        li = fi = 0
        while li < len(local) or fi < len(foreign):
            blended.extend(local[li:li + step])
            li += step
            if fi < len(foreign):
                blended.append(foreign[fi])
                fi += 1
        return blended

    def blend(
        self, deals: list[NormalizedDeal], region_hint: Optional[str] = None
    ) -> list[NormalizedDeal]:
        """
        Rank a candidate set into the final result list.

        Args:
            deals: Deduplicated candidates
            region_hint: Requester region; None means the home region

        Returns:
            At most max_results deals in display order
        """
        buckets = self.partition(deals)
        secondary = self.round_robin(list(buckets.secondary.values()))

        if self.policy.is_regional_request(region_hint):
            ranked = buckets.primary + self.interleave(secondary, buckets.foreign)
        else:
            ranked = buckets.primary + secondary + buckets.foreign

        logger.debug(
            f"Blended {len(deals)} deals: primary={len(buckets.primary)} "
            f"secondary={len(secondary)} foreign={len(buckets.foreign)}"
        )
        return ranked[: self.max_results]
