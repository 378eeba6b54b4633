"""Discovery and cleanup cycle configuration.

``DiscoveryConfig`` reads ``DISCOVERY_*`` and ``CleanupConfig`` reads
``CLEANUP_*`` environment variables.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# global: one marker per stream id suppresses it for every subscriber.
# per_subscription: one marker per (stream id, subscription).
DedupScope = Literal["global", "per_subscription"]


class DiscoveryConfig(BaseSettings):
    """Configuration for the poll-dedup-match-dispatch cycle."""

    model_config = SettingsConfigDict(
        env_prefix="DISCOVERY_",
        case_sensitive=False,
        extra="ignore",
    )

    marker_ttl_days: int = Field(
        default=7,
        ge=1,
        le=90,
        description="Days a discovered-stream marker suppresses re-notification",
    )
    dedup_scope: DedupScope = Field(
        default="global",
        description="Granularity of discovered-stream markers",
    )
    category_concurrency: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Max concurrent catalog requests per cycle",
    )
    page_size: int = Field(
        default=100,
        ge=1,
        le=100,
        description="Live streams requested per category",
    )
    counter_ttl_days: int = Field(
        default=30,
        ge=1,
        description="Days a daily delivery counter is retained",
    )

    @property
    def marker_ttl_seconds(self) -> int:
        return self.marker_ttl_days * 86400

    @property
    def counter_ttl_seconds(self) -> int:
        return self.counter_ttl_days * 86400


class CleanupConfig(BaseSettings):
    """Configuration for pruning chronically failing subscriptions."""

    model_config = SettingsConfigDict(
        env_prefix="CLEANUP_",
        case_sensitive=False,
        extra="ignore",
    )

    max_failure_count: int = Field(
        default=10,
        ge=1,
        description="Failure count at which a subscription becomes prunable",
    )
    failure_timeout_days: int = Field(
        default=7,
        ge=1,
        description="Days without a successful delivery before pruning",
    )
