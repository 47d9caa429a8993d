"""Persistence for watches and their notifications."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import delete, select

from dealfinder.config import settings
from dealfinder.db.models import Watch, WatchNotification
from dealfinder.rank.models import NormalizedDeal

logger = logging.getLogger(__name__)

NOTIFICATION_CHANNELS = ("in_app", "email", "whatsapp")

# Fields the owner may change through update()
EDITABLE_FIELDS = (
    "item_name",
    "search_query",
    "region",
    "frequency_hours",
    "min_price",
    "max_price",
    "notification_channel",
    "owner_contact",
    "is_active",
)


class WatchNotFoundError(LookupError):
    """Raised when a watch or notification does not exist."""

    pass


class WatchPermissionError(PermissionError):
    """Raised when a caller acts on another owner's watch or notification."""

    pass


def clamp_frequency(hours: Optional[float]) -> float:
    """Clamp a frequency to the allowed range; None gets the default."""
    if hours is None:
        return settings.watch_default_frequency_hours
    return max(settings.watch_min_frequency_hours, min(settings.watch_max_frequency_hours, float(hours)))


def _validate(values: dict[str, Any]) -> None:
    channel = values.get("notification_channel")
    if channel is not None and channel not in NOTIFICATION_CHANNELS:
        raise ValueError(f"Unknown notification channel: {channel}")

    for name in ("min_price", "max_price"):
        price = values.get(name)
        if price is not None and Decimal(price) < 0:
            raise ValueError(f"{name} must not be negative")

    min_price = values.get("min_price")
    max_price = values.get("max_price")
    if min_price is not None and max_price is not None and Decimal(min_price) > Decimal(max_price):
        raise ValueError("min_price must not exceed max_price")

    for name in ("item_name", "search_query"):
        if name in values and not (values[name] or "").strip():
            raise ValueError(f"{name} must not be empty")


class WatchStore:
    """CRUD over watches plus notification persistence."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def create(
        self,
        owner_id: str,
        item_name: str,
        search_query: str,
        region: Optional[str] = None,
        frequency_hours: Optional[float] = None,
        min_price: Optional[Decimal] = None,
        max_price: Optional[Decimal] = None,
        notification_channel: str = "in_app",
        owner_contact: Optional[str] = None,
    ) -> Watch:
        """
        Create an active watch.

        Raises:
            ValueError: On invalid bounds, channel or empty query
        """
        values = {
            "item_name": item_name,
            "search_query": search_query,
            "min_price": min_price,
            "max_price": max_price,
            "notification_channel": notification_channel,
        }
        _validate(values)

        watch = Watch(
            owner_id=owner_id,
            owner_contact=owner_contact,
            item_name=item_name.strip(),
            search_query=search_query.strip(),
            region=region.upper() if region else None,
            frequency_hours=clamp_frequency(frequency_hours),
            min_price=min_price,
            max_price=max_price,
            is_active=True,
            notification_channel=notification_channel,
        )
        async with self.session_factory() as db:
            db.add(watch)
            await db.commit()
            await db.refresh(watch)
        logger.info(f"Created watch {watch.id} for owner {owner_id}: '{watch.search_query}'")
        return watch

    async def get(self, watch_id: int) -> Watch:
        async with self.session_factory() as db:
            watch = await db.get(Watch, watch_id)
        if watch is None:
            raise WatchNotFoundError(f"Watch {watch_id} not found")
        return watch

    async def get_for_owner(self, watch_id: int, owner_id: str) -> Watch:
        """
        Fetch a watch on behalf of its owner.

        Raises:
            WatchNotFoundError: If the watch does not exist
            WatchPermissionError: If it belongs to someone else
        """
        watch = await self.get(watch_id)
        if watch.owner_id != owner_id:
            raise WatchPermissionError(f"Watch {watch_id} does not belong to {owner_id}")
        return watch

    async def list_active(self) -> list[Watch]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(Watch).where(Watch.is_active.is_(True)).order_by(Watch.id)
            )
            return list(result.scalars().all())

    async def list_active_for_owner(self, owner_id: str) -> list[Watch]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(Watch)
                .where(Watch.owner_id == owner_id, Watch.is_active.is_(True))
                .order_by(Watch.id)
            )
            return list(result.scalars().all())

    async def list_for_owner(self, owner_id: str) -> list[Watch]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(Watch).where(Watch.owner_id == owner_id).order_by(Watch.id)
            )
            return list(result.scalars().all())

    async def update(self, watch_id: int, owner_id: str, **changes: Any) -> Watch:
        """
        Apply owner edits to a watch.

        Unknown fields are rejected; the frequency is clamped.

        Raises:
            WatchNotFoundError, WatchPermissionError, ValueError
        """
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        async with self.session_factory() as db:
            watch = await db.get(Watch, watch_id)
            if watch is None:
                raise WatchNotFoundError(f"Watch {watch_id} not found")
            if watch.owner_id != owner_id:
                raise WatchPermissionError(f"Watch {watch_id} does not belong to {owner_id}")

            merged = {
                "min_price": watch.min_price,
                "max_price": watch.max_price,
                **changes,
            }
            _validate(merged)

            for name, value in changes.items():
                if name == "frequency_hours":
                    value = clamp_frequency(value)
                elif name == "region" and value:
                    value = value.upper()
                elif name in ("item_name", "search_query"):
                    value = value.strip()
                setattr(watch, name, value)

            await db.commit()
            await db.refresh(watch)
        return watch

    async def set_active(self, watch_id: int, owner_id: str, active: bool) -> Watch:
        """Pause or resume a watch."""
        watch = await self.update(watch_id, owner_id, is_active=active)
        logger.info(f"Watch {watch_id} {'resumed' if active else 'paused'} by {owner_id}")
        return watch

    async def delete(self, watch_id: int, owner_id: str) -> None:
        """Delete a watch and its notifications (owner only)."""
        async with self.session_factory() as db:
            watch = await db.get(Watch, watch_id)
            if watch is None:
                raise WatchNotFoundError(f"Watch {watch_id} not found")
            if watch.owner_id != owner_id:
                raise WatchPermissionError(f"Watch {watch_id} does not belong to {owner_id}")
            await db.execute(delete(WatchNotification).where(WatchNotification.watch_id == watch_id))
            await db.delete(watch)
            await db.commit()
        logger.info(f"Deleted watch {watch_id} for owner {owner_id}")

    async def mark_ran(self, watch_id: int, when: datetime) -> None:
        """Advance last_run_at; the only field the scheduler writes."""
        async with self.session_factory() as db:
            watch = await db.get(Watch, watch_id)
            if watch is None:
                logger.warning(f"Watch {watch_id} vanished before mark_ran")
                return
            watch.last_run_at = when
            await db.commit()

    async def add_notification(
        self,
        watch: Watch,
        deals: list[NormalizedDeal],
        summary: str,
        channel: Optional[str] = None,
    ) -> WatchNotification:
        notification = WatchNotification(
            watch_id=watch.id,
            owner_id=watch.owner_id,
            deals=[d.to_dict() for d in deals],
            summary=summary,
            channel=channel or watch.notification_channel,
            is_read=False,
        )
        async with self.session_factory() as db:
            db.add(notification)
            await db.commit()
            await db.refresh(notification)
        return notification

    async def latest_notification(self, watch_id: int) -> Optional[WatchNotification]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(WatchNotification)
                .where(WatchNotification.watch_id == watch_id)
                .order_by(WatchNotification.created_at.desc(), WatchNotification.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def list_notifications(
        self, owner_id: str, unread_only: bool = False, limit: int = 50
    ) -> list[WatchNotification]:
        async with self.session_factory() as db:
            query = select(WatchNotification).where(WatchNotification.owner_id == owner_id)
            if unread_only:
                query = query.where(WatchNotification.is_read.is_(False))
            query = query.order_by(WatchNotification.created_at.desc(), WatchNotification.id.desc()).limit(limit)
            result = await db.execute(query)
            return list(result.scalars().all())

    async def mark_notification_read(self, notification_id: int, owner_id: str) -> WatchNotification:
        """
        Mark a notification read; only its recipient may do so.

        Raises:
            WatchNotFoundError: If the notification does not exist
            WatchPermissionError: If the caller is not the recipient
        """
        async with self.session_factory() as db:
            notification = await db.get(WatchNotification, notification_id)
            if notification is None:
                raise WatchNotFoundError(f"Notification {notification_id} not found")
            if notification.owner_id != owner_id:
                raise WatchPermissionError(
                    f"Notification {notification_id} does not belong to {owner_id}"
                )
            notification.is_read = True
            await db.commit()
            await db.refresh(notification)
        return notification
