"""Data models for subscriber records.

A subscription binds one destination webhook to one Twitch category and a
match filter. The owner scope is derived from the webhook URL so every
subscription created through the same webhook shares a partition.
"""

import hashlib
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

OWNER_KEY_PREFIX = "webhook#"


def owner_key_for(webhook_url: str) -> str:
    """Derive the owner-scope key for a destination webhook URL.

    Deterministic and stable across processes: same URL, same key.
    """
    digest = hashlib.sha256(webhook_url.strip().encode("utf-8")).hexdigest()
    return f"{OWNER_KEY_PREFIX}{digest[:16]}"


@dataclass(frozen=True)
class MatchFilter:
    """Conjunctive match rules for a subscription.

    Attributes:
        required_tags: Tags that must all be present on the stream.
        required_language: Language code the stream must use (None = any).
        minimum_viewers: Minimum viewer count (None = at least 1).
    """

    required_tags: tuple[str, ...] = ()
    required_language: str | None = None
    minimum_viewers: int | None = None

    def __post_init__(self) -> None:
        # A bare string is one tag, not a sequence of characters
        if isinstance(self.required_tags, str):
            tags = (self.required_tags,) if self.required_tags else ()
            object.__setattr__(self, "required_tags", tags)
        elif not isinstance(self.required_tags, tuple):
            object.__setattr__(self, "required_tags", tuple(self.required_tags or ()))
        if self.minimum_viewers is not None and self.minimum_viewers < 0:
            raise ValueError(
                f"minimum_viewers must be >= 0, got {self.minimum_viewers}"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "required_tags": list(self.required_tags),
            "required_language": self.required_language,
            "minimum_viewers": self.minimum_viewers,
        }


@dataclass
class Subscription:
    """A subscriber record from the subscriptions table.

    Attributes:
        owner_key: Owner scope derived from ``webhook_url``.
        subscription_id: UUID4 identifier, unique within the owner scope.
        webhook_url: Destination endpoint (opaque URL).
        category_id: Twitch category (game) id to watch.
        category_name: Display name of the category.
        filter: Match rules gating notifications.
        failure_count: Consecutive failed deliveries, reset on success.
        created_at: When the subscription was created.
        updated_at: Last time the record was written.
        last_success: Last successful delivery, None if never delivered.
    """

    owner_key: str
    subscription_id: str
    webhook_url: str
    category_id: str
    category_name: str = ""
    filter: MatchFilter = field(default_factory=MatchFilter)
    failure_count: int = 0
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    updated_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    last_success: datetime | None = None

    @classmethod
    def create(
        cls,
        webhook_url: str,
        category_id: str,
        category_name: str = "",
        filter: MatchFilter | None = None,
    ) -> "Subscription":
        """Build a new subscription with derived owner key and fresh id."""
        return cls(
            owner_key=owner_key_for(webhook_url),
            subscription_id=str(uuid.uuid4()),
            webhook_url=webhook_url,
            category_id=category_id,
            category_name=category_name,
            filter=filter or MatchFilter(),
        )

    @property
    def identity(self) -> tuple[str, str]:
        """Composite primary key (owner_key, subscription_id)."""
        return (self.owner_key, self.subscription_id)

    @property
    def last_activity(self) -> datetime:
        """Last successful delivery, or creation time if none ever happened."""
        return self.last_success or self.created_at

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "owner_key": self.owner_key,
            "subscription_id": self.subscription_id,
            "webhook_url": self.webhook_url,
            "category_id": self.category_id,
            "category_name": self.category_name,
            **self.filter.to_dict(),
            "failure_count": self.failure_count,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "last_success": self.last_success.isoformat() if self.last_success else None,
        }
