"""Content catalog: Twitch Helix live-stream snapshots.

Components:
- LiveItem / Category: Snapshot dataclasses built from Helix payloads
- HTTPClient / RetryConfig: httpx transport with backoff on transient errors
- CredentialCache / AccessToken: Lazily refreshed app access token
- CatalogClient: Per-category stream queries with failure isolation
- CatalogError / CredentialError: Catalog failure types
"""

from twitch_notifier.catalog.auth import AccessToken, CredentialCache
from twitch_notifier.catalog.client import CatalogClient, CatalogFetchResult
from twitch_notifier.catalog.errors import CatalogError, CredentialError
from twitch_notifier.catalog.http_client import (
    HTTPClient,
    HTTPClientError,
    RateLimitError,
    RetryConfig,
)
from twitch_notifier.catalog.schemas import Category, LiveItem

__all__ = [
    "AccessToken",
    "CatalogClient",
    "CatalogError",
    "CatalogFetchResult",
    "Category",
    "CredentialCache",
    "CredentialError",
    "HTTPClient",
    "HTTPClientError",
    "LiveItem",
    "RateLimitError",
    "RetryConfig",
]
