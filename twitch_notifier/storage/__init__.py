"""Storage layer - PostgreSQL connection management and the Redis client."""

from twitch_notifier.storage.database import Database, create_redis_client

__all__ = ["Database", "create_redis_client"]
