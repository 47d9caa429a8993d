"""Watch notifications for their recipient."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from dealfinder.api.deps import get_owner_id, get_watch_store
from dealfinder.watches.store import WatchNotFoundError, WatchPermissionError, WatchStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


class NotificationResponse(BaseModel):
    """Response model for a watch notification."""
    id: int
    watch_id: int
    summary: str
    channel: str
    is_read: bool
    deals: list[dict]
    created_at: datetime

    class Config:
        from_attributes = True


@router.get("", response_model=list[NotificationResponse])
async def list_notifications(
    unread_only: bool = False,
    limit: int = Query(default=50, ge=1, le=200),
    owner_id: str = Depends(get_owner_id),
    store: WatchStore = Depends(get_watch_store),
):
    """List the caller's notifications, newest first."""
    return await store.list_notifications(owner_id, unread_only=unread_only, limit=limit)


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: int,
    owner_id: str = Depends(get_owner_id),
    store: WatchStore = Depends(get_watch_store),
):
    """Mark a notification read (recipient only)."""
    try:
        return await store.mark_notification_read(notification_id, owner_id)
    except WatchNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except WatchPermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e)) from e
