"""Redis-backed discovered-stream markers.

A marker records that notifications for a stream were dispatched, so later
cycles skip it until the marker expires. Markers are written once with a
redis-enforced TTL and never updated or deleted.

Key formats:
- global scope: ``discovered:{item_id}``
- per-subscription scope: ``discovered:{item_id}:{owner_key}:{subscription_id}``
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)

MARKER_KEY_PREFIX = "discovered"


def global_marker_key(item_id: str) -> str:
    return f"{MARKER_KEY_PREFIX}:{item_id}"


def subscription_marker_key(item_id: str, owner_key: str, subscription_id: str) -> str:
    return f"{MARKER_KEY_PREFIX}:{item_id}:{owner_key}:{subscription_id}"


@dataclass(frozen=True)
class DiscoveredMarker:
    """Dedup record for a stream that has been announced."""

    key: str
    item_id: str
    category_id: str
    broadcaster_id: str
    ttl_seconds: int
    discovered_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def to_json(self) -> str:
        return json.dumps({
            "item_id": self.item_id,
            "category_id": self.category_id,
            "broadcaster_id": self.broadcaster_id,
            "discovered_at": self.discovered_at.isoformat(),
            "ttl_seconds": self.ttl_seconds,
        })


class MarkerStore:
    """Existence checks and writes for discovered-stream markers.

    Args:
        redis_client: ``redis.asyncio`` client (``decode_responses=True``).
    """

    def __init__(self, redis_client: Any) -> None:
        self._redis = redis_client

    async def exists(self, key: str) -> bool:
        """True if a non-expired marker is stored under ``key``."""
        return bool(await self._redis.exists(key))

    async def put(self, marker: DiscoveredMarker) -> None:
        """Store ``marker`` with its TTL, overwriting any existing value."""
        await self._redis.set(marker.key, marker.to_json(), ex=marker.ttl_seconds)
        logger.debug("Marker written: %s (ttl=%ds)", marker.key, marker.ttl_seconds)

    async def get(self, key: str) -> dict[str, Any] | None:
        """Decode the marker stored under ``key``, or None."""
        raw = await self._redis.get(key)
        if raw is None:
            return None
        return json.loads(raw)
