"""Notification delivery to subscriber webhooks."""

from twitch_notifier.notifications.config import SinkConfig
from twitch_notifier.notifications.sink import (
    DeliveryError,
    DiscordWebhookSink,
    NotificationSink,
)

__all__ = [
    "DeliveryError",
    "DiscordWebhookSink",
    "NotificationSink",
    "SinkConfig",
]
