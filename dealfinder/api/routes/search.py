"""Deal search endpoint."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from dealfinder.api.deps import get_search_service
from dealfinder.rank.models import NormalizedDeal
from dealfinder.search.service import SearchService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/search", tags=["search"])


class DealResponse(BaseModel):
    """A ranked deal."""
    title: str
    price: float
    currency: str
    original_price: float
    original_currency: str
    source: str
    link: str
    image: Optional[str] = None
    rating: str
    reviews: str
    relevance: float
    is_regional_match: bool


class RecommendationResponse(BaseModel):
    """The suggested best deal."""
    deal: DealResponse
    reason: str
    ai_generated: bool


class SearchResponse(BaseModel):
    """Search outcome."""
    query: str
    status: str
    total_valid: int
    cached: bool
    category: Optional[str] = None
    deals: list[DealResponse]
    recommendation: Optional[RecommendationResponse] = None


def _deal_response(d: NormalizedDeal) -> DealResponse:
    return DealResponse(
        title=d.title,
        price=float(d.price),
        currency=d.currency,
        original_price=float(d.original_price),
        original_currency=d.original_currency,
        source=d.source,
        link=d.link,
        image=d.image,
        rating=d.rating,
        reviews=d.reviews,
        relevance=d.relevance,
        is_regional_match=d.is_regional_match,
    )


@router.get("", response_model=SearchResponse)
async def search_deals(
    q: str = Query(..., min_length=1, max_length=256, description="Search query"),
    region: Optional[str] = Query(default=None, max_length=8, description="Requester region code"),
    category: Optional[str] = Query(default=None, max_length=64),
    service: SearchService = Depends(get_search_service),
):
    """Search all sources; an empty result is status "no_results", not an error."""
    outcome = await service.search(q, region_hint=region, category_hint=category, recommend=True)
    recommendation = None
    if outcome.recommendation is not None:
        recommendation = RecommendationResponse(
            deal=_deal_response(outcome.recommendation.deal),
            reason=outcome.recommendation.reason,
            ai_generated=outcome.recommendation.ai_generated,
        )
    return SearchResponse(
        query=outcome.query,
        status=outcome.status,
        total_valid=outcome.total_valid,
        cached=outcome.cached,
        category=outcome.category,
        deals=[_deal_response(d) for d in outcome.deals],
        recommendation=recommendation,
    )
