"""Best-effort LLM helpers around a search: query category and a single pick."""

import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

from dealfinder import metrics
from dealfinder.ai.llm_service import LLMService, llm_service
from dealfinder.ai.prompts import (
    CATEGORY_SYSTEM_PROMPT,
    RECOMMENDATION_SCHEMA,
    RECOMMENDATION_SYSTEM_PROMPT,
    SHOPPING_CATEGORIES,
    CategoryDetectionPrompt,
    RecommendationPrompt,
)
from dealfinder.notify.formatters import format_price
from dealfinder.rank.models import NOT_AVAILABLE, NormalizedDeal

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "other"

DEFAULT_REASON = "Best value among the top results: competitive price from a reliable store."

# Free-form answers that still name a category
_CATEGORY_HINTS = (
    ("gadget", ("gadget", "tech", "electronic", "phone", "computer")),
    ("fashion", ("fashion", "cloth", "wear", "shoe", "apparel")),
)

_NON_WORD = re.compile(r"[^a-z]")

# Deals shown to the model for a recommendation
RECOMMENDATION_LIMIT = 10


def parse_category(answer: str) -> str:
    """Map an LLM answer onto a known category, falling back to "other"."""
    cleaned = _NON_WORD.sub("", (answer or "").lower())
    if cleaned in SHOPPING_CATEGORIES:
        return cleaned
    for category, hints in _CATEGORY_HINTS:
        if any(hint in cleaned for hint in hints):
            return category
    return DEFAULT_CATEGORY


class CategoryDetector:
    """Classify a shopping query into one of SHOPPING_CATEGORIES."""

    def __init__(self, service: Optional[LLMService] = None):
        self.service = service or llm_service

    @property
    def available(self) -> bool:
        return self.service.is_configured

    async def detect(self, query: str) -> str:
        """
        Detect the product category of a query.

        Never raises; any failure yields "other".
        """
        if not query.strip() or not self.available:
            return DEFAULT_CATEGORY

        prompt = CategoryDetectionPrompt(query=query)
        try:
            answer = await self.service.call_llm(prompt=prompt.to_prompt(), system_prompt=CATEGORY_SYSTEM_PROMPT)
        except Exception as e:
            metrics.ai_assist_total.labels(feature="category", status="failed").inc()
            logger.warning(f"AI category detection failed for '{query}': {e}")
            return DEFAULT_CATEGORY

        category = parse_category(answer)
        metrics.ai_assist_total.labels(feature="category", status="success").inc()
        logger.debug(f"Detected category '{category}' for '{query}'")
        return category


@dataclass
class Recommendation:
    """The single deal suggested for a search."""

    deal: NormalizedDeal
    reason: str
    ai_generated: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "deal": self.deal.to_dict(),
            "reason": self.reason,
            "ai_generated": self.ai_generated,
        }


def describe_deal(deal: NormalizedDeal) -> str:
    """One prompt line: title, price, source and rating when known."""
    line = f"{deal.title} - {format_price(deal.price, deal.currency)} from {deal.source}"
    if deal.rating != NOT_AVAILABLE:
        line += f" (Rating: {deal.rating}, {deal.reviews} reviews)"
    return line


class DealRecommender:
    """Ask the LLM for the best single deal of a ranked list."""

    def __init__(self, service: Optional[LLMService] = None, limit: int = RECOMMENDATION_LIMIT):
        self.service = service or llm_service
        self.limit = limit

    @property
    def available(self) -> bool:
        return self.service.is_configured

    def fallback(self, deals: list[NormalizedDeal]) -> Recommendation:
        return Recommendation(deal=deals[0], reason=DEFAULT_REASON, ai_generated=False)

    async def recommend(self, query: str, deals: list[NormalizedDeal]) -> Optional[Recommendation]:
        """
        Pick the best deal.

        Args:
            query: Search query
            deals: Ranked deals, best first

        Returns:
            Recommendation, or None when there are no deals or no LLM is configured.
            On an LLM failure or an out-of-range choice the top-ranked deal is
            returned with a generic reason.
        """
        if not deals or not self.available:
            return None

        shown = deals[: self.limit]
        prompt = RecommendationPrompt(query=query, deals=[describe_deal(d) for d in shown])
        try:
            answer = await self.service.call_llm_structured(
                prompt=prompt.to_prompt(),
                response_schema=RECOMMENDATION_SCHEMA,
                system_prompt=RECOMMENDATION_SYSTEM_PROMPT,
            )
        except Exception as e:
            metrics.ai_assist_total.labels(feature="recommendation", status="failed").inc()
            logger.warning(f"AI recommendation failed for '{query}': {e}")
            return self.fallback(shown)

        choice = answer.get("choice")
        reason = str(answer.get("reason") or "").strip() or DEFAULT_REASON
        if isinstance(choice, bool) or not isinstance(choice, int) or not 1 <= choice <= len(shown):
            metrics.ai_assist_total.labels(feature="recommendation", status="invalid").inc()
            logger.info(f"AI recommendation returned unusable choice {choice!r}, using top deal")
            return Recommendation(deal=shown[0], reason=reason, ai_generated=False)

        metrics.ai_assist_total.labels(feature="recommendation", status="success").inc()
        return Recommendation(deal=shown[choice - 1], reason=reason)
