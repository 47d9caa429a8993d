"""FastAPI dependencies."""

from fastapi import Header, HTTPException, Request, status

from dealfinder.search.service import SearchService
from dealfinder.watches.store import WatchStore


def get_search_service(request: Request) -> SearchService:
    """Dependency for the shared search service."""
    return request.app.state.services.search_service


def get_watch_store(request: Request) -> WatchStore:
    """Dependency for the watch store."""
    return request.app.state.services.watch_store


async def get_owner_id(x_owner_id: str = Header(..., alias="X-Owner-Id")) -> str:
    """
    Owner identity supplied by the calling service.

    Raises:
        HTTPException: 400 if the header is blank
    """
    owner_id = x_owner_id.strip()
    if not owner_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Owner-Id header is empty",
        )
    return owner_id
