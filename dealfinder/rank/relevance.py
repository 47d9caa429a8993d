"""Title relevance scoring against a search query."""

import logging
import re
from typing import Optional

from dealfinder.config import settings

logger = logging.getLogger(__name__)

_TOKEN_PATTERN = re.compile(r"[^\W_]+")

# Tokens this short must match a whole title token ("15" must not hit "150")
SHORT_TOKEN_LENGTH = 3


def tokenize(text: str) -> list[str]:
    """Lowercase alphanumeric (Unicode) words of length >= 2."""
    return [t for t in _TOKEN_PATTERN.findall((text or "").lower()) if len(t) >= 2]


class RelevanceScorer:
    """
    Scores how well a listing title matches a query.

    score = matched distinct query tokens / distinct query tokens, multiplied
    by the accessory penalty when the title names an accessory the query
    didn't ask for.
    """

    def __init__(
        self,
        threshold: Optional[float] = None,
        accessory_penalty: Optional[float] = None,
        accessory_keywords: Optional[list[str]] = None,
    ):
        self.threshold = threshold if threshold is not None else settings.relevance_threshold
        self.accessory_penalty = (
            accessory_penalty if accessory_penalty is not None else settings.accessory_penalty
        )
        keywords = accessory_keywords if accessory_keywords is not None else settings.accessory_keywords
        self.accessory_patterns = [
            (kw.lower(), re.compile(r"\b" + re.escape(kw.lower()) + r"s?\b"))
            for kw in keywords
            if kw.strip()
        ]

    def _accessory_mismatch(self, title_lower: str, query_lower: str) -> bool:
        for keyword, pattern in self.accessory_patterns:
            if pattern.search(title_lower) and not pattern.search(query_lower):
                return True
        return False

    def score(self, title: str, query: Optional[str]) -> float:
        """
        Score a title against a query.

        Args:
            title: Listing title
            query: Search query; empty or token-less queries score everything 1.0

        Returns:
            Relevance in [0, 1]
        """
        query_tokens = list(dict.fromkeys(tokenize(query or "")))
        if not query_tokens:
            return 1.0

        title_lower = (title or "").lower()
        title_tokens = set(tokenize(title_lower))

        matched = 0
        for token in query_tokens:
            if len(token) <= SHORT_TOKEN_LENGTH:
                if token in title_tokens:
                    matched += 1
            elif token in title_lower:
                matched += 1

        score = matched / len(query_tokens)
        if score and self._accessory_mismatch(title_lower, (query or "").lower()):
            score *= self.accessory_penalty
        return max(0.0, min(1.0, score))

    def is_relevant(self, score: float, query: Optional[str]) -> bool:
        """Listings below the threshold are dropped only when a query was given."""
        if not tokenize(query or ""):
            return True
        return score >= self.threshold
