"""Removal of subscriptions whose webhooks keep failing.

A subscription is pruned when its consecutive failure count has reached
``CleanupConfig.max_failure_count`` and its last successful delivery (or
creation, if it never succeeded) is older than
``CleanupConfig.failure_timeout_days``. Deletion is permanent and the
subscriber is not notified.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from twitch_notifier.discovery.config import CleanupConfig
from twitch_notifier.observability.metrics import get_metrics
from twitch_notifier.observability.tracing import get_tracer, traced
from twitch_notifier.subscriptions.repository import SubscriptionRepository
from twitch_notifier.subscriptions.schemas import Subscription

logger = structlog.get_logger(__name__)


@dataclass
class CleanupReport:
    scanned: int = 0
    removed: int = 0
    errors: int = 0
    elapsed_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "scanned": self.scanned,
            "removed": self.removed,
            "errors": self.errors,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }


class SubscriptionPruner:
    """Deletes chronically failing subscriptions.

    Usage:
        pruner = SubscriptionPruner(SubscriptionRepository(db))
        report = await pruner.run_cleanup_cycle()
    """

    def __init__(
        self,
        subscriptions: SubscriptionRepository,
        config: CleanupConfig | None = None,
    ) -> None:
        self._subscriptions = subscriptions
        self._config = config or CleanupConfig()
        self._metrics = get_metrics()
        self._tracer = get_tracer(__name__)

    def cutoff(self, now: datetime) -> datetime:
        """Last activity must be older than this for a subscription to go."""
        return now - timedelta(days=self._config.failure_timeout_days)

    def is_prunable(self, subscription: Subscription, now: datetime) -> bool:
        if subscription.failure_count < self._config.max_failure_count:
            return False
        return subscription.last_activity < self.cutoff(now)

    async def run_cleanup_cycle(self, now: datetime | None = None) -> CleanupReport:
        """Scan all subscriptions and delete the prunable ones.

        A failed scan propagates. A failed delete is logged and counted.
        The delete re-checks the condition, so a subscription that recovered
        since the scan is kept.
        """
        now = now or datetime.now(timezone.utc)
        start = time.monotonic()
        report = CleanupReport()

        with traced(self._tracer, "cleanup.cycle") as span:
            try:
                subscriptions = await self._subscriptions.list_all()
            except Exception:
                self._metrics.record_cycle("cleanup", "error", time.monotonic() - start)
                raise

            report.scanned = len(subscriptions)
            cutoff = self.cutoff(now)
            for sub in subscriptions:
                if not self.is_prunable(sub, now):
                    continue
                try:
                    if await self._subscriptions.delete_if_prunable(
                        sub.owner_key,
                        sub.subscription_id,
                        self._config.max_failure_count,
                        cutoff,
                    ):
                        report.removed += 1
                        logger.info(
                            "Pruned failing subscription",
                            owner_key=sub.owner_key,
                            subscription_id=sub.subscription_id,
                            failure_count=sub.failure_count,
                            last_activity=sub.last_activity.isoformat(),
                        )
                except Exception as e:
                    report.errors += 1
                    logger.error(
                        "Failed to prune subscription",
                        owner_key=sub.owner_key,
                        subscription_id=sub.subscription_id,
                        error=str(e),
                    )

            report.elapsed_seconds = time.monotonic() - start
            span.set_attribute("cleanup.removed", report.removed)

        if report.removed:
            self._metrics.subscriptions_pruned.inc(report.removed)
        self._metrics.record_cycle("cleanup", "success", report.elapsed_seconds)
        logger.info("Cleanup cycle complete", **report.to_dict())
        return report
