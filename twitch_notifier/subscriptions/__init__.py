"""Subscriptions: database-backed subscriber records."""

from twitch_notifier.subscriptions.repository import SubscriptionRepository
from twitch_notifier.subscriptions.schemas import MatchFilter, Subscription, owner_key_for

__all__ = [
    "MatchFilter",
    "Subscription",
    "SubscriptionRepository",
    "owner_key_for",
]
