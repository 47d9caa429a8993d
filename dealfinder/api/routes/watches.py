"""Owner-scoped watch management."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field

from dealfinder.api.deps import get_owner_id, get_watch_store
from dealfinder.watches.store import WatchNotFoundError, WatchPermissionError, WatchStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/watches", tags=["watches"])

CHANNEL_PATTERN = "^(in_app|email|whatsapp)$"


class WatchCreate(BaseModel):
    """Request model for creating a watch."""
    item_name: str = Field(..., min_length=1, max_length=255)
    search_query: str = Field(..., min_length=1, max_length=512)
    region: Optional[str] = Field(default=None, max_length=8)
    frequency_hours: Optional[float] = Field(default=None, gt=0)
    min_price: Optional[Decimal] = Field(default=None, ge=0)
    max_price: Optional[Decimal] = Field(default=None, ge=0)
    notification_channel: str = Field(default="in_app", pattern=CHANNEL_PATTERN)
    owner_contact: Optional[str] = Field(default=None, max_length=255)


class WatchUpdate(BaseModel):
    """Request model for updating a watch."""
    item_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    search_query: Optional[str] = Field(default=None, min_length=1, max_length=512)
    region: Optional[str] = Field(default=None, max_length=8)
    frequency_hours: Optional[float] = Field(default=None, gt=0)
    min_price: Optional[Decimal] = Field(default=None, ge=0)
    max_price: Optional[Decimal] = Field(default=None, ge=0)
    notification_channel: Optional[str] = Field(default=None, pattern=CHANNEL_PATTERN)
    owner_contact: Optional[str] = Field(default=None, max_length=255)
    is_active: Optional[bool] = None


class WatchResponse(BaseModel):
    """Response model for watch data."""
    id: int
    owner_id: str
    item_name: str
    search_query: str
    region: Optional[str]
    frequency_hours: float
    min_price: Optional[Decimal]
    max_price: Optional[Decimal]
    is_active: bool
    notification_channel: str
    last_run_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, WatchNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, WatchPermissionError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("", response_model=list[WatchResponse])
async def list_watches(
    active_only: bool = False,
    owner_id: str = Depends(get_owner_id),
    store: WatchStore = Depends(get_watch_store),
):
    """List the caller's watches."""
    if active_only:
        return await store.list_active_for_owner(owner_id)
    return await store.list_for_owner(owner_id)


@router.post("", response_model=WatchResponse, status_code=status.HTTP_201_CREATED)
async def create_watch(
    body: WatchCreate,
    owner_id: str = Depends(get_owner_id),
    store: WatchStore = Depends(get_watch_store),
):
    """Create a watch for the caller."""
    try:
        return await store.create(owner_id=owner_id, **body.model_dump())
    except ValueError as e:
        raise _http_error(e) from e


@router.get("/{watch_id}", response_model=WatchResponse)
async def get_watch(
    watch_id: int,
    owner_id: str = Depends(get_owner_id),
    store: WatchStore = Depends(get_watch_store),
):
    try:
        return await store.get_for_owner(watch_id, owner_id)
    except (WatchNotFoundError, WatchPermissionError) as e:
        raise _http_error(e) from e


@router.patch("/{watch_id}", response_model=WatchResponse)
async def update_watch(
    watch_id: int,
    body: WatchUpdate,
    owner_id: str = Depends(get_owner_id),
    store: WatchStore = Depends(get_watch_store),
):
    """Edit a watch; the frequency is clamped to the allowed range."""
    changes = body.model_dump(exclude_unset=True)
    try:
        return await store.update(watch_id, owner_id, **changes)
    except (WatchNotFoundError, WatchPermissionError, ValueError) as e:
        raise _http_error(e) from e


@router.post("/{watch_id}/pause", response_model=WatchResponse)
async def pause_watch(
    watch_id: int,
    owner_id: str = Depends(get_owner_id),
    store: WatchStore = Depends(get_watch_store),
):
    try:
        return await store.set_active(watch_id, owner_id, False)
    except (WatchNotFoundError, WatchPermissionError) as e:
        raise _http_error(e) from e


@router.post("/{watch_id}/resume", response_model=WatchResponse)
async def resume_watch(
    watch_id: int,
    owner_id: str = Depends(get_owner_id),
    store: WatchStore = Depends(get_watch_store),
):
    try:
        return await store.set_active(watch_id, owner_id, True)
    except (WatchNotFoundError, WatchPermissionError) as e:
        raise _http_error(e) from e


@router.delete("/{watch_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_watch(
    watch_id: int,
    owner_id: str = Depends(get_owner_id),
    store: WatchStore = Depends(get_watch_store),
):
    """Delete a watch and its notifications."""
    try:
        await store.delete(watch_id, owner_id)
    except (WatchNotFoundError, WatchPermissionError) as e:
        raise _http_error(e) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)
