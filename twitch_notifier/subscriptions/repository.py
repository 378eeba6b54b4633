"""Database repository for the subscriptions table.

Delivery outcomes are written with single-statement updates so concurrent
cycles touching the same subscription never lose an increment.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from twitch_notifier.storage.database import Database
from twitch_notifier.subscriptions.schemas import MatchFilter, Subscription, owner_key_for

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS subscriptions (
    owner_key         TEXT NOT NULL,
    subscription_id   TEXT NOT NULL,
    webhook_url       TEXT NOT NULL,
    category_id       TEXT NOT NULL,
    category_name     TEXT NOT NULL DEFAULT '',
    required_tags     TEXT[] NOT NULL DEFAULT '{}',
    required_language TEXT,
    minimum_viewers   INTEGER,
    failure_count     INTEGER NOT NULL DEFAULT 0,
    created_at        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    last_success      TIMESTAMPTZ,
    PRIMARY KEY (owner_key, subscription_id)
);

CREATE INDEX IF NOT EXISTS idx_subscriptions_category
    ON subscriptions(category_id);
"""

_UPSERT_SQL = """
INSERT INTO subscriptions (
    owner_key, subscription_id, webhook_url, category_id, category_name,
    required_tags, required_language, minimum_viewers, failure_count,
    created_at, updated_at, last_success
) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
ON CONFLICT (owner_key, subscription_id) DO UPDATE SET
    webhook_url = EXCLUDED.webhook_url,
    category_id = EXCLUDED.category_id,
    category_name = EXCLUDED.category_name,
    required_tags = EXCLUDED.required_tags,
    required_language = EXCLUDED.required_language,
    minimum_viewers = EXCLUDED.minimum_viewers,
    updated_at = EXCLUDED.updated_at
RETURNING *
"""

_RECORD_SUCCESS_SQL = """
UPDATE subscriptions
SET last_success = $3, failure_count = 0, updated_at = $3
WHERE owner_key = $1 AND subscription_id = $2
"""

_RECORD_FAILURE_SQL = """
UPDATE subscriptions
SET failure_count = failure_count + 1, updated_at = $3
WHERE owner_key = $1 AND subscription_id = $2
"""

# Prune condition evaluated against the row as it is at delete time
_DELETE_IF_PRUNABLE_SQL = """
DELETE FROM subscriptions
WHERE owner_key = $1 AND subscription_id = $2
  AND failure_count >= $3
  AND COALESCE(last_success, created_at) < $4
"""


def _record_to_subscription(record: Any) -> Subscription:
    """Convert an asyncpg Record to a Subscription dataclass."""
    return Subscription(
        owner_key=record["owner_key"],
        subscription_id=record["subscription_id"],
        webhook_url=record["webhook_url"],
        category_id=record["category_id"],
        category_name=record["category_name"] or "",
        filter=MatchFilter(
            required_tags=tuple(record["required_tags"] or ()),
            required_language=record["required_language"] or None,
            minimum_viewers=record["minimum_viewers"],
        ),
        failure_count=record["failure_count"] or 0,
        created_at=record["created_at"],
        updated_at=record["updated_at"],
        last_success=record["last_success"],
    )


def _rows_affected(status: str) -> int:
    """Parse the row count out of an asyncpg status string like ``UPDATE 1``."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError):
        return 0


class SubscriptionRepository:
    """CRUD and outcome-tracking operations for the subscriptions table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the subscriptions table and indexes (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Subscriptions table ensured")

    async def upsert(self, subscription: Subscription) -> Subscription:
        """Insert or update a subscription.

        Outcome fields (failure_count, last_success) are only taken from the
        argument on insert; updates keep the stored values.
        """
        f = subscription.filter
        row = await self._db.fetchrow(
            _UPSERT_SQL,
            subscription.owner_key,
            subscription.subscription_id,
            subscription.webhook_url,
            subscription.category_id,
            subscription.category_name,
            list(f.required_tags),
            f.required_language,
            f.minimum_viewers,
            subscription.failure_count,
            subscription.created_at,
            subscription.updated_at,
            subscription.last_success,
        )
        return _record_to_subscription(row)

    async def list_all(self) -> list[Subscription]:
        """Full scan of every subscription."""
        rows = await self._db.fetch(
            "SELECT * FROM subscriptions ORDER BY owner_key, subscription_id"
        )
        return [_record_to_subscription(r) for r in rows]

    async def get(self, owner_key: str, subscription_id: str) -> Subscription | None:
        """Fetch a single subscription by its composite key."""
        row = await self._db.fetchrow(
            "SELECT * FROM subscriptions WHERE owner_key = $1 AND subscription_id = $2",
            owner_key, subscription_id,
        )
        return _record_to_subscription(row) if row else None

    async def get_by_owner(self, owner_key: str) -> list[Subscription]:
        """All subscriptions within one owner scope."""
        rows = await self._db.fetch(
            "SELECT * FROM subscriptions WHERE owner_key = $1 ORDER BY created_at",
            owner_key,
        )
        return [_record_to_subscription(r) for r in rows]

    async def get_by_webhook(self, webhook_url: str) -> list[Subscription]:
        """All subscriptions delivering to ``webhook_url``."""
        return await self.get_by_owner(owner_key_for(webhook_url))

    async def delete_if_prunable(
        self,
        owner_key: str,
        subscription_id: str,
        max_failures: int,
        cutoff: datetime,
    ) -> bool:
        """Delete a subscription only if it is still failing and stale.

        The row must have ``failure_count >= max_failures`` and its last
        success (or creation) must be older than ``cutoff`` when the DELETE
        runs. Returns True if a row was removed.
        """
        result = await self._db.execute(
            _DELETE_IF_PRUNABLE_SQL, owner_key, subscription_id, max_failures, cutoff,
        )
        return _rows_affected(result) > 0

    async def record_success(
        self,
        owner_key: str,
        subscription_id: str,
        at: datetime | None = None,
    ) -> bool:
        """Stamp a successful delivery and reset the failure counter.

        Returns False if the subscription no longer exists.
        """
        at = at or datetime.now(timezone.utc)
        result = await self._db.execute(_RECORD_SUCCESS_SQL, owner_key, subscription_id, at)
        return _rows_affected(result) > 0

    async def record_failure(
        self,
        owner_key: str,
        subscription_id: str,
        at: datetime | None = None,
    ) -> bool:
        """Atomically increment the failure counter.

        Returns False if the subscription no longer exists.
        """
        at = at or datetime.now(timezone.utc)
        result = await self._db.execute(_RECORD_FAILURE_SQL, owner_key, subscription_id, at)
        return _rows_affected(result) > 0

    async def count(self) -> int:
        """Count total subscriptions."""
        return await self._db.fetchval("SELECT COUNT(*) FROM subscriptions") or 0
