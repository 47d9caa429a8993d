"""Best-effort LLM filtering of the top relevance batch."""

import logging
from typing import Optional

from dealfinder import metrics
from dealfinder.ai.llm_service import LLMService, llm_service
from dealfinder.ai.prompts import RELEVANCE_SYSTEM_PROMPT, RelevanceFilterPrompt
from dealfinder.rank.models import NormalizedDeal

logger = logging.getLogger(__name__)


class RelevanceAssistError(RuntimeError):
    """Raised when the assist returns an unusable answer."""

    pass


class LLMRelevanceAssist:
    """Ask the LLM which deals in a batch actually match the query."""

    def __init__(self, service: Optional[LLMService] = None):
        self.service = service or llm_service

    @property
    def available(self) -> bool:
        return self.service.is_configured

    async def rerank(self, query: str, deals: list[NormalizedDeal]) -> list[NormalizedDeal]:
        """
        Filter and reorder deals by the LLM's judgement.

        Args:
            query: Search query
            deals: Batch of candidate deals

        Returns:
            Subset of the input deals, in the order the LLM returned them

        Raises:
            RelevanceAssistError: If the response is not a list of valid indices
        """
        if not deals:
            return []

        prompt = RelevanceFilterPrompt(query=query, titles=[d.title for d in deals])
        try:
            indices = await self.service.call_llm_json_array(
                prompt=prompt.to_prompt(),
                system_prompt=RELEVANCE_SYSTEM_PROMPT,
            )
        except ValueError as e:
            metrics.ai_rerank_total.labels(status="invalid").inc()
            raise RelevanceAssistError(str(e)) from e

        kept: list[NormalizedDeal] = []
        seen: set[int] = set()
        for value in indices:
            if isinstance(value, bool) or not isinstance(value, int):
                metrics.ai_rerank_total.labels(status="invalid").inc()
                raise RelevanceAssistError(f"Non-integer index in LLM response: {value!r}")
            if value < 0 or value >= len(deals) or value in seen:
                continue
            seen.add(value)
            kept.append(deals[value])

        metrics.ai_rerank_total.labels(status="success").inc()
        logger.info(f"AI filter kept {len(kept)}/{len(deals)} items for query '{query}'")
        return kept
