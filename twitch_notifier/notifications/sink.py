"""Notification sinks for live-stream announcements.

``NotificationSink`` is the delivery contract used by the discovery cycle.
``DiscordWebhookSink`` posts a Discord embed per delivery and opens a new
``httpx.AsyncClient`` per call (short-lived, no pooling).
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from twitch_notifier.catalog.schemas import LiveItem
from twitch_notifier.notifications.config import SinkConfig

logger = logging.getLogger(__name__)


class DeliveryError(Exception):
    """A notification could not be delivered to its endpoint."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotificationSink(ABC):
    """Abstract base for notification delivery."""

    @abstractmethod
    async def deliver(
        self,
        endpoint: str,
        item: LiveItem,
        category_name: str | None = None,
    ) -> None:
        """Deliver a notification about ``item`` to ``endpoint``.

        Raises:
            DeliveryError: On any non-success response or transport error.
        """

    @abstractmethod
    async def validate(self, endpoint: str) -> bool:
        """Best-effort reachability probe. Never raises."""


def _format_viewers(count: int) -> str:
    return f"{count:,}"


class DiscordWebhookSink(NotificationSink):
    """Delivers stream announcements as Discord webhook embeds."""

    def __init__(self, config: SinkConfig | None = None) -> None:
        self._config = config or SinkConfig()

    def build_payload(
        self,
        item: LiveItem,
        category_name: str | None = None,
    ) -> dict[str, Any]:
        """Build the Discord webhook JSON payload for a live item."""
        game = item.category_name or category_name or item.category_id
        name = item.broadcaster_name or item.broadcaster_login

        fields = [
            {
                "name": "👥 Viewers",
                "value": _format_viewers(item.viewer_count),
                "inline": True,
            },
            {
                "name": "🌐 Language",
                "value": item.language.upper() or "N/A",
                "inline": True,
            },
        ]
        if item.tags:
            fields.append({
                "name": "🏷️ Tags",
                "value": ", ".join(item.tags),
                "inline": False,
            })

        embed: dict[str, Any] = {
            "title": f"🔴 {name} is now live playing {game}!",
            "description": item.title,
            "url": item.url,
            "color": self._config.embed_color,
            "fields": fields,
            "timestamp": item.started_at.isoformat(),
        }
        if item.thumbnail_url:
            embed["thumbnail"] = {
                "url": item.thumbnail(
                    self._config.thumbnail_width, self._config.thumbnail_height,
                ),
            }
        return {"embeds": [embed]}

    async def deliver(
        self,
        endpoint: str,
        item: LiveItem,
        category_name: str | None = None,
    ) -> None:
        payload = self.build_payload(item, category_name)
        try:
            async with httpx.AsyncClient(timeout=self._config.timeout_seconds) as client:
                resp = await client.post(endpoint, json=payload)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise DeliveryError(
                f"Discord webhook request failed for stream {item.item_id}: {e}"
            ) from e

        if not resp.is_success:
            raise DeliveryError(
                f"Discord webhook returned {resp.status_code} for stream {item.item_id}",
                status_code=resp.status_code,
            )
        logger.debug("Delivered stream %s notification", item.item_id)

    async def validate(self, endpoint: str) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self._config.timeout_seconds) as client:
                resp = await client.get(endpoint)
                return resp.is_success
        except Exception as e:
            logger.warning("Webhook validation failed: %s", e)
            return False
