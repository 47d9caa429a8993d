"""Recurring watch runs: search, filter by price bounds, notify the owner."""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Awaitable, Callable, Optional

from dealfinder import metrics
from dealfinder.config import settings
from dealfinder.db.models import Watch, WatchNotification
from dealfinder.logging_config import get_logger
from dealfinder.notify.formatters import format_watch_summary
from dealfinder.notify.sinks import NotificationPayload, NotificationSink
from dealfinder.rank.dedupe import dedupe_key
from dealfinder.rank.models import NormalizedDeal
from dealfinder.search.service import SearchService
from dealfinder.watches.store import WatchStore

logger = get_logger(__name__, component="watch_runner")


@dataclass
class TickSummary:
    """Counters for one scheduler tick."""

    checked: int = 0
    ran: int = 0
    skipped: int = 0
    notified: int = 0
    failed: int = 0
    skipped_tick: bool = False


def within_bounds(deal: NormalizedDeal, min_price: Optional[Decimal], max_price: Optional[Decimal]) -> bool:
    """Inclusive price-bound check in the target currency."""
    price = Decimal(deal.price)
    if min_price is not None and price < Decimal(min_price):
        return False
    if max_price is not None and price > Decimal(max_price):
        return False
    return True


class WatchRunner:
    """
    Runs due watches one at a time.

    A tick that starts while another is still running is skipped rather than
    queued. One watch failing never aborts the tick, and every attempted run
    advances last_run_at.
    """

    def __init__(
        self,
        store: WatchStore,
        search_service: SearchService,
        sink: NotificationSink,
        delay_seconds: Optional[float] = None,
        max_deals: Optional[int] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.search_service = search_service
        self.sink = sink
        self.delay_seconds = delay_seconds if delay_seconds is not None else settings.watch_delay_seconds
        self.max_deals = max_deals if max_deals is not None else settings.watch_notify_max_deals
        self.clock = clock
        self.sleep = sleep
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def is_due(self, watch: Watch, now: datetime) -> bool:
        """A watch that never ran is due; otherwise once its frequency has elapsed."""
        if watch.last_run_at is None:
            return True
        return now - watch.last_run_at >= timedelta(hours=watch.frequency_hours)

    async def _new_deals(self, watch: Watch, deals: list[NormalizedDeal]) -> list[NormalizedDeal]:
        """Drop deals already delivered in the watch's latest notification."""
        latest = await self.store.latest_notification(watch.id)
        if latest is None:
            return deals
        delivered = {dedupe_key(NormalizedDeal.from_dict(d)) for d in latest.deals}
        return [d for d in deals if dedupe_key(d) not in delivered]

    async def run_watch(self, watch: Watch) -> Optional[WatchNotification]:
        """
        Run one watch's search and notify on qualifying deals.

        Args:
            watch: Active watch

        Returns:
            The created notification, or None when nothing new qualified
        """
        log = logger.bind(watch_id=watch.id, owner_id=watch.owner_id)
        outcome = await self.search_service.search(
            watch.search_query,
            region_hint=watch.region,
            use_cache=False,
        )
        if not outcome.has_results:
            log.info(f"Watch {watch.id}: no results for '{watch.search_query}'")
            return None

        qualifying = [d for d in outcome.deals if within_bounds(d, watch.min_price, watch.max_price)]
        qualifying = await self._new_deals(watch, qualifying)
        qualifying = qualifying[: self.max_deals]
        if not qualifying:
            log.info(f"Watch {watch.id}: no new deals within bounds")
            return None

        summary = format_watch_summary(watch.item_name, qualifying)
        notification = await self.store.add_notification(watch, qualifying, summary)
        log.info(f"Watch {watch.id}: notification {notification.id} with {len(qualifying)} deals")

        try:
            await self.sink.deliver(
                NotificationPayload(
                    watch_id=watch.id,
                    owner_id=watch.owner_id,
                    owner_contact=watch.owner_contact,
                    item_name=watch.item_name,
                    channel=notification.channel,
                    summary=summary,
                    deals=qualifying,
                    notification_id=notification.id,
                )
            )
        except Exception as e:
            log.error(f"Watch {watch.id}: notification sink failed: {e}")

        return notification

    async def tick(self) -> TickSummary:
        """
        Run every due active watch once.

        Returns:
            TickSummary; skipped_tick is set when another tick was in progress
        """
        summary = TickSummary()
        if self._running:
            logger.warning("Previous watch tick still running, skipping this one")
            metrics.watch_ticks_total.labels(status="skipped").inc()
            summary.skipped_tick = True
            return summary

        self._running = True
        start = time.monotonic()
        try:
            try:
                watches = await self.store.list_active()
            except Exception as e:
                logger.error(f"Could not load active watches: {e}")
                metrics.watch_ticks_total.labels(status="failed").inc()
                return summary

            for watch in watches:
                summary.checked += 1
                now = self.clock()
                if not self.is_due(watch, now):
                    summary.skipped += 1
                    metrics.watch_runs_total.labels(status="skipped").inc()
                    continue

                if summary.ran:
                    await self.sleep(self.delay_seconds)
                    now = self.clock()

                summary.ran += 1
                try:
                    notification = await self.run_watch(watch)
                    if notification is not None:
                        summary.notified += 1
                        metrics.watch_runs_total.labels(status="notified").inc()
                    else:
                        metrics.watch_runs_total.labels(status="no_deals").inc()
                except Exception as e:
                    summary.failed += 1
                    metrics.watch_runs_total.labels(status="failed").inc()
                    logger.error(f"Watch {watch.id} run failed: {e}", exc_info=True)
                finally:
                    try:
                        await self.store.mark_ran(watch.id, now)
                    except Exception as e:
                        logger.error(f"Could not advance last_run_at for watch {watch.id}: {e}")

            metrics.watch_ticks_total.labels(status="completed").inc()
            logger.info(
                f"Watch tick: checked={summary.checked} ran={summary.ran} skipped={summary.skipped} "
                f"notified={summary.notified} failed={summary.failed}"
            )
            return summary
        finally:
            metrics.watch_tick_duration_seconds.observe(time.monotonic() - start)
            self._running = False
