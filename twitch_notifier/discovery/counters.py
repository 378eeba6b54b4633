"""Daily delivery counters kept in redis hashes.

One hash per (kind, UTC date), ``stats:{kind}:{YYYY-MM-DD}``, with fields
``count`` and ``updated_at``. Every increment refreshes the expiry.
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, Literal

logger = logging.getLogger(__name__)

CounterKind = Literal["success", "failure"]

COUNTER_KEY_PREFIX = "stats"
DEFAULT_COUNTER_TTL_SECONDS = 30 * 86400


def counter_key(kind: CounterKind, day: date) -> str:
    return f"{COUNTER_KEY_PREFIX}:{kind}:{day.isoformat()}"


def _today() -> date:
    return datetime.now(timezone.utc).date()


class DeliveryCounterStore:
    """Increment and read per-day delivery totals."""

    def __init__(
        self,
        redis_client: Any,
        ttl_seconds: int = DEFAULT_COUNTER_TTL_SECONDS,
    ) -> None:
        self._redis = redis_client
        self._ttl_seconds = ttl_seconds

    async def increment(
        self,
        kind: CounterKind,
        amount: int = 1,
        day: date | None = None,
    ) -> None:
        """Add ``amount`` to the counter for ``kind`` on ``day`` (default today).

        A non-positive amount is a no-op.
        """
        if amount <= 0:
            return
        key = counter_key(kind, day or _today())
        now = datetime.now(timezone.utc).isoformat()
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.hincrby(key, "count", amount)
            pipe.hset(key, "updated_at", now)
            pipe.expire(key, self._ttl_seconds)
            await pipe.execute()

    async def get(self, kind: CounterKind, day: date | None = None) -> int:
        """Current count for ``kind`` on ``day`` (default today); 0 if unset."""
        value = await self._redis.hget(counter_key(kind, day or _today()), "count")
        return int(value) if value else 0
