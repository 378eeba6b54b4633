"""
Connections to the two backing stores.

PostgreSQL holds the ``subscriptions`` table and is reached through an
asyncpg pool wrapped by ``Database``; ``SubscriptionRepository`` is its only
user. Redis holds the discovered markers, the daily delivery counters and
the last poll time; ``create_redis_client`` builds the one client those
stores share.

Both are opened once per process (``open_runtime`` in the CLI) and closed
on the way out.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from types import TracebackType
from typing import Any

import asyncpg
import redis.asyncio as redis

from twitch_notifier.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)

# Longest single statement; a full subscriptions scan must fit well inside it
COMMAND_TIMEOUT_SECONDS = 60


class Database:
    """
    asyncpg pool for the subscriptions table.

    Usage:
        async with Database() as db:
            repo = SubscriptionRepository(db)
            subscriptions = await repo.list_all()
    """

    def __init__(self, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        self._dsn = str(settings.database_url)
        self._min_size = settings.db_pool_min_size
        self._max_size = settings.db_pool_max_size
        self._pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        try:
            self._pool = await asyncpg.create_pool(
                self._dsn,
                min_size=self._min_size,
                max_size=self._max_size,
                command_timeout=COMMAND_TIMEOUT_SECONDS,
            )
        except Exception as e:
            logger.error("Could not connect to the subscriptions database: %s", e)
            raise
        logger.info("Subscriptions database pool open (%d-%d)", self._min_size, self._max_size)

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("Subscriptions database pool closed")

    async def __aenter__(self) -> "Database":
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._pool

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[asyncpg.Connection]:
        async with self.pool.acquire() as conn:
            yield conn

    async def execute(self, query: str, *args: Any) -> str:
        """Run a statement; returns the status tag (e.g. ``"UPDATE 1"``)."""
        async with self.acquire() as conn:
            return await conn.execute(query, *args)

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        async with self.acquire() as conn:
            return await conn.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        async with self.acquire() as conn:
            return await conn.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        async with self.acquire() as conn:
            return await conn.fetchval(query, *args)

    async def health_check(self) -> bool:
        """True if ``SELECT 1`` succeeds; used by the ``health`` command."""
        try:
            return await self.fetchval("SELECT 1") == 1
        except Exception as e:
            logger.warning("Database health check failed: %s", e)
            return False


def create_redis_client(settings: Settings | None = None) -> redis.Redis:
    """
    Build the Redis client shared by the marker, counter and status stores.

    Responses are decoded to ``str`` so stores never deal with bytes.
    """
    settings = settings or get_settings()
    return redis.from_url(
        str(settings.redis_url),
        encoding="utf-8",
        decode_responses=True,
    )
