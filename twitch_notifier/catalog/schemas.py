"""Snapshot models for Twitch Helix payloads.

``LiveItem`` is transient: one is built per live stream per cycle and never
persisted. Field names follow the notifier's vocabulary rather than the
Helix wire names; ``from_api`` does the mapping.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

STREAM_URL_TEMPLATE = "https://twitch.tv/{login}"


def _parse_timestamp(value: str | None) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class LiveItem:
    """A currently live stream returned by the catalog for one category.

    Attributes:
        item_id: Helix stream id (changes every broadcast).
        broadcaster_id: Helix user id of the broadcaster.
        broadcaster_login: Login name, used to build the channel URL.
        broadcaster_name: Display name.
        category_id: Game id the stream is categorized under.
        category_name: Game display name.
        title: Stream title.
        viewer_count: Concurrent viewers at snapshot time.
        tags: Free-form stream tags.
        language: ISO 639-1 language code reported by Twitch.
        started_at: When the broadcast started.
        thumbnail_url: Template URL with ``{width}``/``{height}`` placeholders.
    """

    item_id: str
    broadcaster_id: str
    category_id: str
    title: str = ""
    viewer_count: int = 0
    tags: tuple[str, ...] = ()
    language: str = ""
    started_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    thumbnail_url: str = ""
    broadcaster_login: str = ""
    broadcaster_name: str = ""
    category_name: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "LiveItem":
        """Build a LiveItem from one entry of a Helix ``/streams`` response.

        Raises:
            KeyError: If ``id``, ``user_id`` or ``game_id`` is missing.
            ValueError: If ``viewer_count`` or ``started_at`` is malformed.
        """
        return cls(
            item_id=str(data["id"]),
            broadcaster_id=str(data["user_id"]),
            broadcaster_login=data.get("user_login") or "",
            broadcaster_name=data.get("user_name") or data.get("user_login") or "",
            category_id=str(data["game_id"]),
            category_name=data.get("game_name") or "",
            title=data.get("title") or "",
            viewer_count=int(data.get("viewer_count") or 0),
            tags=tuple(data.get("tags") or ()),
            language=data.get("language") or "",
            started_at=_parse_timestamp(data.get("started_at")),
            thumbnail_url=data.get("thumbnail_url") or "",
        )

    @property
    def url(self) -> str:
        """Public channel URL for the broadcaster."""
        return STREAM_URL_TEMPLATE.format(login=self.broadcaster_login)

    def thumbnail(self, width: int = 320, height: int = 180) -> str:
        """Resolve the thumbnail template to a concrete size."""
        return (
            self.thumbnail_url
            .replace("{width}", str(width))
            .replace("{height}", str(height))
        )


@dataclass(frozen=True)
class Category:
    """A Twitch category (game)."""

    category_id: str
    name: str
    box_art_url: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Category":
        return cls(
            category_id=str(data["id"]),
            name=data.get("name") or "",
            box_art_url=data.get("box_art_url") or "",
        )
