"""Discovery cycle: poll the catalog, dedup, match, and dispatch notifications.

One cycle:
1. Load every subscription and group them by category.
2. Record the poll time.
3. Fetch live streams for every watched category (failures are isolated).
4. Skip streams that already carry a discovered marker.
5. Evaluate each remaining stream against the subscriptions of its category.
6. Write the marker(s) for matched streams before any delivery.
7. Deliver concurrently; each outcome is written to the subscription and
   added to the daily counter as soon as it is known.

Only a failure to list subscriptions aborts the cycle; everything else is
logged and folded into the ``CycleReport``.
"""

import asyncio
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Any

import structlog

from twitch_notifier.catalog.client import CatalogClient
from twitch_notifier.catalog.schemas import LiveItem
from twitch_notifier.discovery.config import DiscoveryConfig
from twitch_notifier.discovery.counters import DeliveryCounterStore
from twitch_notifier.discovery.markers import (
    DiscoveredMarker,
    MarkerStore,
    global_marker_key,
    subscription_marker_key,
)
from twitch_notifier.discovery.matching import evaluate
from twitch_notifier.discovery.status import StatusService
from twitch_notifier.notifications.sink import NotificationSink
from twitch_notifier.observability.metrics import get_metrics
from twitch_notifier.observability.tracing import get_tracer, traced
from twitch_notifier.subscriptions.repository import SubscriptionRepository
from twitch_notifier.subscriptions.schemas import Subscription

logger = structlog.get_logger(__name__)


@dataclass
class CycleReport:
    """Totals for one discovery cycle."""

    new_items: int = 0
    sent: int = 0
    failed: int = 0
    categories_checked: int = 0
    category_errors: int = 0
    items_seen: int = 0
    items_skipped: int = 0
    item_errors: int = 0
    elapsed_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "new_items": self.new_items,
            "sent": self.sent,
            "failed": self.failed,
            "categories_checked": self.categories_checked,
            "category_errors": self.category_errors,
            "items_seen": self.items_seen,
            "items_skipped": self.items_skipped,
            "item_errors": self.item_errors,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }


class DiscoveryService:
    """Orchestrates the poll-dedup-match-dispatch cycle.

    Collaborators are injected so each can be replaced in tests. ``counters``
    and ``status`` are optional bookkeeping; when omitted the cycle skips it.
    """

    def __init__(
        self,
        subscriptions: SubscriptionRepository,
        catalog: CatalogClient,
        sink: NotificationSink,
        markers: MarkerStore,
        counters: DeliveryCounterStore | None = None,
        status: StatusService | None = None,
        config: DiscoveryConfig | None = None,
    ) -> None:
        self._subscriptions = subscriptions
        self._catalog = catalog
        self._sink = sink
        self._markers = markers
        self._counters = counters
        self._status = status
        self._config = config or DiscoveryConfig()
        self._metrics = get_metrics()
        self._tracer = get_tracer(__name__)

    async def run_discovery_cycle(self) -> CycleReport:
        """Run one discovery cycle.

        Raises:
            Exception: Whatever ``SubscriptionRepository.list_all`` raised.
        """
        start = time.monotonic()
        report = CycleReport()

        with traced(self._tracer, "discovery.cycle", {"dedup_scope": self._config.dedup_scope}) as span:
            try:
                await self._run(report)
            except Exception:
                self._metrics.record_cycle("discovery", "error", time.monotonic() - start)
                raise

            report.elapsed_seconds = time.monotonic() - start
            span.set_attribute("discovery.new_items", report.new_items)
            span.set_attribute("discovery.sent", report.sent)
            span.set_attribute("discovery.failed", report.failed)

        self._metrics.record_cycle("discovery", "success", report.elapsed_seconds)
        logger.info("Discovery cycle complete", **report.to_dict())
        return report

    async def _run(self, report: CycleReport) -> None:
        subscriptions = await self._subscriptions.list_all()

        by_category: dict[str, list[Subscription]] = defaultdict(list)
        for sub in subscriptions:
            by_category[sub.category_id].append(sub)

        await self._record_poll_time()
        self._metrics.set_tracked(len(subscriptions), len(by_category))

        if not by_category:
            logger.info("No subscriptions configured, skipping stream check")
            return

        report.categories_checked = len(by_category)
        fetched = await self._catalog.get_live_items_by_category(list(by_category))
        report.category_errors = len(fetched.failed_categories)

        for category_id, items in fetched.items_by_category.items():
            candidates = by_category.get(category_id, [])
            for item in items:
                report.items_seen += 1
                self._metrics.live_items_seen.inc()
                await self._process_item(item, candidates, report)

    async def _record_poll_time(self) -> None:
        if self._status is None:
            return
        try:
            await self._status.record_poll_time()
        except Exception as e:
            logger.warning("Failed to record poll time", error=str(e))

    async def _undiscovered(
        self, item: LiveItem, candidates: list[Subscription],
    ) -> list[Subscription]:
        """Subscriptions that have not been notified about ``item`` yet.

        Raises whatever the marker store raised.
        """
        if self._config.dedup_scope == "global":
            if await self._markers.exists(global_marker_key(item.item_id)):
                return []
            return list(candidates)

        remaining = []
        for sub in candidates:
            key = subscription_marker_key(item.item_id, sub.owner_key, sub.subscription_id)
            if not await self._markers.exists(key):
                remaining.append(sub)
        return remaining

    def _markers_for(
        self, item: LiveItem, matched: list[Subscription],
    ) -> list[tuple[DiscoveredMarker, list[Subscription]]]:
        """Pair each marker to write with the subscriptions it covers."""
        ttl = self._config.marker_ttl_seconds

        def marker(key: str) -> DiscoveredMarker:
            return DiscoveredMarker(
                key=key,
                item_id=item.item_id,
                category_id=item.category_id,
                broadcaster_id=item.broadcaster_id,
                ttl_seconds=ttl,
            )

        if self._config.dedup_scope == "global":
            return [(marker(global_marker_key(item.item_id)), matched)]
        return [
            (marker(subscription_marker_key(item.item_id, sub.owner_key, sub.subscription_id)), [sub])
            for sub in matched
        ]

    async def _process_item(
        self,
        item: LiveItem,
        candidates: list[Subscription],
        report: CycleReport,
    ) -> None:
        try:
            eligible = await self._undiscovered(item, candidates)
        except Exception as e:
            report.item_errors += 1
            logger.error("Marker check failed, skipping stream", item_id=item.item_id, error=str(e))
            return

        if not eligible:
            report.items_skipped += 1
            return

        matched: list[Subscription] = []
        for sub in eligible:
            result = evaluate(item, sub.filter)
            if result.matched:
                matched.append(sub)
            else:
                logger.debug(
                    "Subscription did not match",
                    item_id=item.item_id,
                    subscription_id=sub.subscription_id,
                    reason=result.reason,
                )

        # No marker without a match, so the stream is re-evaluated next cycle
        if not matched:
            return

        to_deliver: list[Subscription] = []
        for marker, covered in self._markers_for(item, matched):
            try:
                await self._markers.put(marker)
            except Exception as e:
                report.item_errors += 1
                logger.error(
                    "Marker write failed, not dispatching",
                    item_id=item.item_id,
                    key=marker.key,
                    error=str(e),
                )
                continue
            to_deliver.extend(covered)

        if not to_deliver:
            return

        report.new_items += 1
        self._metrics.items_discovered.inc()
        logger.info(
            "New stream discovered",
            item_id=item.item_id,
            broadcaster=item.broadcaster_name,
            category=item.category_name,
            viewers=item.viewer_count,
            subscriptions=len(to_deliver),
        )

        outcomes = await asyncio.gather(*(self._deliver(item, sub) for sub in to_deliver))
        sent = sum(1 for ok in outcomes if ok)
        report.sent += sent
        report.failed += len(outcomes) - sent

    async def _deliver(self, item: LiveItem, sub: Subscription) -> bool:
        """Deliver to one subscription and record its outcome. Never raises."""
        with traced(self._tracer, "discovery.deliver", {"subscription_id": sub.subscription_id}):
            try:
                await self._sink.deliver(sub.webhook_url, item, sub.category_name)
                success = True
            except Exception as e:
                success = False
                logger.warning(
                    "Delivery failed",
                    item_id=item.item_id,
                    owner_key=sub.owner_key,
                    subscription_id=sub.subscription_id,
                    error=str(e),
                )

        self._metrics.record_delivery(success)
        await self._count_outcome(success)

        try:
            if success:
                await self._subscriptions.record_success(sub.owner_key, sub.subscription_id)
            else:
                await self._subscriptions.record_failure(sub.owner_key, sub.subscription_id)
        except Exception as e:
            logger.error(
                "Failed to record delivery outcome",
                subscription_id=sub.subscription_id,
                success=success,
                error=str(e),
            )
        return success

    async def _count_outcome(self, success: bool) -> None:
        if self._counters is None:
            return
        kind = "success" if success else "failure"
        try:
            await self._counters.increment(kind)
        except Exception as e:
            logger.warning("Failed to update daily counter", kind=kind, error=str(e))
