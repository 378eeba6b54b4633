"""Operational status: last poll time, subscription count, today's deliveries."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from twitch_notifier.discovery.counters import DeliveryCounterStore
from twitch_notifier.subscriptions.repository import SubscriptionRepository

logger = logging.getLogger(__name__)

LAST_POLL_KEY = "status:last_poll_time"


def humanize_since(then: datetime | None, now: datetime) -> str:
    """Render the age of ``then`` as "Never", "Just now", "Nm ago" or "Nh ago"."""
    if then is None:
        return "Never"
    minutes = int((now - then).total_seconds() // 60)
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    return f"{minutes // 60}h ago"


@dataclass
class StatusReport:
    """Snapshot returned by ``StatusService.get_status``."""

    last_poll_time: datetime | None
    time_since_last_poll: str
    subscription_count: int
    notifications_sent_today: int
    failed_notifications_today: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "last_poll_time": (
                self.last_poll_time.isoformat() if self.last_poll_time else None
            ),
            "time_since_last_poll": self.time_since_last_poll,
            "subscription_count": self.subscription_count,
            "notifications_sent_today": self.notifications_sent_today,
            "failed_notifications_today": self.failed_notifications_today,
        }


class StatusService:
    """Reads and writes the status bookkeeping kept alongside the cycles."""

    def __init__(
        self,
        redis_client: Any,
        subscriptions: SubscriptionRepository,
        counters: DeliveryCounterStore,
    ) -> None:
        self._redis = redis_client
        self._subscriptions = subscriptions
        self._counters = counters

    async def record_poll_time(self, at: datetime | None = None) -> None:
        at = at or datetime.now(timezone.utc)
        await self._redis.set(LAST_POLL_KEY, at.isoformat())

    async def get_last_poll_time(self) -> datetime | None:
        raw = await self._redis.get(LAST_POLL_KEY)
        if not raw:
            return None
        try:
            return datetime.fromisoformat(raw)
        except ValueError:
            logger.warning("Ignoring malformed %s value: %r", LAST_POLL_KEY, raw)
            return None

    async def get_status(self, now: datetime | None = None) -> StatusReport:
        now = now or datetime.now(timezone.utc)
        last_poll = await self.get_last_poll_time()
        return StatusReport(
            last_poll_time=last_poll,
            time_since_last_poll=humanize_since(last_poll, now),
            subscription_count=await self._subscriptions.count(),
            notifications_sent_today=await self._counters.get("success", now.date()),
            failed_notifications_today=await self._counters.get("failure", now.date()),
        )
