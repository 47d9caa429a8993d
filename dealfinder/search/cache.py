"""Result cache: final ranked deals keyed by normalized query text."""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import select

from dealfinder import metrics
from dealfinder.config import settings
from dealfinder.db.models import SearchCache
from dealfinder.rank.models import NormalizedDeal

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def normalize_key(query: str) -> str:
    """Lowercase, trimmed, whitespace-collapsed query."""
    return _WHITESPACE.sub(" ", (query or "").strip().lower())


@dataclass
class CachedResult:
    """A cached ranked result."""

    query: str
    deals: list[NormalizedDeal]
    total_valid: int
    last_updated: datetime


class ResultCache:
    """
    Search result cache backed by the search_cache table.

    Expired rows are ignored by get() and overwritten by put(); nothing is
    ever deleted. Store errors never reach the caller. Keys carry no region,
    so callers re-rank hits for the requester's region.
    """

    def __init__(
        self,
        session_factory,
        ttl: Optional[timedelta] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.session_factory = session_factory
        self.ttl = ttl or timedelta(hours=settings.cache_ttl_hours)
        self.clock = clock

    async def get(self, query: str) -> Optional[CachedResult]:
        """
        Look up a fresh cached result.

        Returns:
            CachedResult, or None when missing, expired or unreadable
        """
        key = normalize_key(query)
        if not key:
            return None

        try:
            async with self.session_factory() as db:
                result = await db.execute(select(SearchCache).where(SearchCache.query == key))
                row = result.scalar_one_or_none()
                if row is None:
                    metrics.search_cache_total.labels(result="miss").inc()
                    return None

                age = self.clock() - row.last_updated
                if age > self.ttl:
                    metrics.search_cache_total.labels(result="expired").inc()
                    logger.debug(f"Cache expired for '{key}' (age {age})")
                    return None

                deals = [NormalizedDeal.from_dict(d) for d in row.deals]
                cached = CachedResult(
                    query=key,
                    deals=deals,
                    total_valid=row.total_valid,
                    last_updated=row.last_updated,
                )
        except Exception as e:
            metrics.search_cache_total.labels(result="error").inc()
            logger.warning(f"Cache read failed for '{key}', treating as miss: {e}")
            return None

        metrics.search_cache_total.labels(result="hit").inc()
        return cached

    async def put(self, query: str, deals: list[NormalizedDeal], total_valid: int) -> None:
        """Upsert the result for a query (last write wins)."""
        key = normalize_key(query)
        if not key:
            return

        payload = [d.to_dict() for d in deals]
        now = self.clock()
        try:
            async with self.session_factory() as db:
                result = await db.execute(select(SearchCache).where(SearchCache.query == key))
                row = result.scalar_one_or_none()
                if row is None:
                    db.add(SearchCache(query=key, deals=payload, total_valid=total_valid, last_updated=now))
                else:
                    row.deals = payload
                    row.total_valid = total_valid
                    row.last_updated = now
                await db.commit()
        except Exception as e:
            logger.warning(f"Cache write failed for '{key}': {e}")
