"""Collapse listings that represent the same offer."""

import logging
import re
from decimal import ROUND_HALF_UP, Decimal

from dealfinder.rank.models import NormalizedDeal

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def dedupe_key(deal: NormalizedDeal) -> tuple[str, str, str]:
    """
    Composite key for a deal: source, title and converted price.

    Titles are compared lowercased with whitespace collapsed; prices at two
    decimals.
    """
    source = (deal.source or "").strip().lower()
    title = _WHITESPACE.sub(" ", (deal.title or "").strip().lower())
    price = Decimal(deal.price).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return source, title, str(price)


def dedupe_deals(deals: list[NormalizedDeal]) -> tuple[list[NormalizedDeal], int]:
    """
    Keep the first deal per key, preserving order.

    Returns:
        Tuple of (unique deals, number of duplicates removed)
    """
    seen: set[tuple[str, str, str]] = set()
    unique: list[NormalizedDeal] = []
    for deal in deals:
        key = dedupe_key(deal)
        if key in seen:
            continue
        seen.add(key)
        unique.append(deal)

    removed = len(deals) - len(unique)
    if removed:
        logger.debug(f"Removed {removed} duplicate listings")
    return unique, removed
