"""Notification sinks for watch results.

The persisted WatchNotification row is the in-app delivery. Other channels are
handed to an external webhook that owns the actual transport (email, chat).
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

from dealfinder import metrics
from dealfinder.config import settings
from dealfinder.notify.formatters import format_generic_payload
from dealfinder.rank.models import NormalizedDeal

logger = logging.getLogger(__name__)


@dataclass
class NotificationPayload:
    """What a sink receives for one watch run."""

    watch_id: int
    owner_id: str
    owner_contact: Optional[str]
    item_name: str
    channel: str
    summary: str
    deals: list[NormalizedDeal]
    notification_id: Optional[int] = None


class NotificationSink(Protocol):
    async def deliver(self, payload: NotificationPayload) -> bool:
        ...


class InAppNotificationSink:
    """The stored notification row is the delivery; only log it."""

    async def deliver(self, payload: NotificationPayload) -> bool:
        metrics.watch_notifications_total.labels(channel="in_app").inc()
        logger.info(
            f"In-app notification {payload.notification_id} for owner {payload.owner_id}: "
            f"{payload.summary}"
        )
        return True

    async def close(self):
        return None


class WebhookNotificationSink:
    """Posts notifications as generic JSON to a webhook endpoint."""

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url or settings.notification_webhook_url
        self.timeout = timeout if timeout is not None else settings.notification_timeout_seconds
        self._http_client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def close(self):
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def deliver(self, payload: NotificationPayload) -> bool:
        """
        Post the notification.

        Returns:
            True if the webhook accepted it, False otherwise
        """
        body = format_generic_payload(
            watch_id=payload.watch_id,
            owner_id=payload.owner_id,
            item_name=payload.item_name,
            channel=payload.channel,
            summary=payload.summary,
            deals=payload.deals,
            notification_id=payload.notification_id,
        )
        if payload.owner_contact:
            body["owner_contact"] = payload.owner_contact

        try:
            client = await self._get_client()
            response = await client.post(self.url, json=body)
            response.raise_for_status()
        except httpx.HTTPError as e:
            metrics.watch_notifications_total.labels(channel=f"{payload.channel}_failed").inc()
            logger.error(f"Webhook delivery failed for watch {payload.watch_id}: {e}")
            return False

        metrics.watch_notifications_total.labels(channel=payload.channel).inc()
        logger.info(f"Webhook notification sent for watch {payload.watch_id} ({payload.channel})")
        return True


class ChannelRouter:
    """Routes in-app notifications to the in-app sink and the rest to the webhook."""

    def __init__(
        self,
        in_app: Optional[InAppNotificationSink] = None,
        webhook: Optional[WebhookNotificationSink] = None,
    ):
        self.in_app = in_app or InAppNotificationSink()
        self.webhook = webhook

    async def deliver(self, payload: NotificationPayload) -> bool:
        if payload.channel == "in_app" or self.webhook is None:
            return await self.in_app.deliver(payload)
        return await self.webhook.deliver(payload)

    async def close(self):
        if self.webhook is not None:
            await self.webhook.close()


def build_notification_sink() -> ChannelRouter:
    """Sink for the configured channels; webhook only when a URL is set."""
    webhook = WebhookNotificationSink() if settings.notification_webhook_url else None
    return ChannelRouter(webhook=webhook)
