"""
Twitch Helix client for live-stream snapshots.

One request is issued per category. ``get_live_items_by_category`` runs
them concurrently under a semaphore and isolates failures: a category that
errors is logged, reported in ``CatalogFetchResult.failed_categories`` and
skipped, while the remaining categories are still returned.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from twitch_notifier.catalog.auth import CredentialCache
from twitch_notifier.catalog.errors import CatalogError
from twitch_notifier.catalog.http_client import HTTPClient, HTTPClientError, RetryConfig
from twitch_notifier.catalog.schemas import Category, LiveItem
from twitch_notifier.config.settings import Settings, get_settings
from twitch_notifier.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

# Helix caps ``first`` at 100
MAX_PAGE_SIZE = 100
SEARCH_PAGE_SIZE = 10


@dataclass
class CatalogFetchResult:
    """Live items per category plus the categories that could not be fetched."""

    items_by_category: dict[str, list[LiveItem]] = field(default_factory=dict)
    failed_categories: list[str] = field(default_factory=list)

    @property
    def items(self) -> list[LiveItem]:
        """All live items, in category request order."""
        return [item for items in self.items_by_category.values() for item in items]


class CatalogClient:
    """
    Content catalog client backed by the Twitch Helix API.

    Usage:
        async with CatalogClient.from_settings() as catalog:
            result = await catalog.get_live_items_by_category(["509658"])
    """

    def __init__(
        self,
        http: HTTPClient,
        credentials: CredentialCache,
        client_id: str | None,
        base_url: str = "https://api.twitch.tv/helix",
        page_size: int = MAX_PAGE_SIZE,
        concurrency: int = 4,
    ) -> None:
        self._http = http
        self._credentials = credentials
        self._client_id = client_id or ""
        self._base_url = base_url.rstrip("/")
        self._page_size = max(1, min(page_size, MAX_PAGE_SIZE))
        self._concurrency = max(1, concurrency)
        self._metrics = get_metrics()

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        page_size: int = MAX_PAGE_SIZE,
        concurrency: int = 4,
    ) -> "CatalogClient":
        """Wire an HTTPClient and CredentialCache from application settings."""
        settings = settings or get_settings()
        http = HTTPClient(
            retry_config=RetryConfig(
                max_retries=settings.max_http_retries,
                max_backoff_seconds=settings.max_backoff_seconds,
            ),
            timeout=settings.http_timeout_seconds,
        )
        credentials = CredentialCache(
            http=http,
            client_id=settings.twitch_client_id,
            client_secret=settings.twitch_client_secret,
            auth_url=settings.twitch_auth_url,
        )
        return cls(
            http=http,
            credentials=credentials,
            client_id=settings.twitch_client_id,
            base_url=settings.twitch_base_url,
            page_size=page_size,
            concurrency=concurrency,
        )

    async def __aenter__(self) -> "CatalogClient":
        await self._http.__aenter__()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self._http.__aexit__(exc_type, exc_val, exc_tb)

    @property
    def credentials(self) -> CredentialCache:
        return self._credentials

    async def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        """Authenticated GET against Helix, returning the decoded JSON body.

        A 401 drops the cached token so the next request re-authenticates.
        """
        token = await self._credentials.get_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Client-Id": self._client_id,
        }
        try:
            response = await self._http.get(
                f"{self._base_url}{path}", params=params, headers=headers,
            )
        except HTTPClientError as e:
            if e.status_code == 401:
                self._credentials.invalidate()
            raise CatalogError(
                f"Helix {path} request failed: {e}",
                status_code=e.status_code,
            ) from e

        try:
            return response.json()
        except ValueError as e:
            raise CatalogError(f"Helix {path} returned invalid JSON: {e}") from e

    async def get_live_items(self, category_id: str) -> list[LiveItem]:
        """
        Fetch up to ``page_size`` live streams for one category.

        Entries that cannot be parsed are logged and dropped.

        Raises:
            CatalogError: If the request fails or credentials are unavailable.
        """
        try:
            body = await self._get(
                "/streams", {"game_id": category_id, "first": self._page_size},
            )
        except CatalogError as e:
            e.category_id = category_id
            raise

        items: list[LiveItem] = []
        for raw in body.get("data") or []:
            try:
                items.append(LiveItem.from_api(raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(
                    "Skipping malformed stream entry in category %s: %s",
                    category_id, e,
                )
        return items

    async def get_live_items_by_category(
        self, category_ids: list[str],
    ) -> CatalogFetchResult:
        """
        Fetch live items for many categories, one request each.

        Duplicate ids are requested once. A failing category never aborts
        the others.
        """
        unique_ids = list(dict.fromkeys(category_ids))
        result = CatalogFetchResult()
        if not unique_ids:
            return result

        semaphore = asyncio.Semaphore(self._concurrency)

        async def fetch_one(category_id: str) -> tuple[str, list[LiveItem] | None]:
            async with semaphore:
                start = time.monotonic()
                try:
                    items = await self.get_live_items(category_id)
                except Exception as e:
                    self._metrics.record_catalog_request(False, time.monotonic() - start)
                    logger.error(
                        "Failed to fetch streams for category %s: %s",
                        category_id, e,
                    )
                    return category_id, None
                self._metrics.record_catalog_request(True, time.monotonic() - start)
                logger.debug(
                    "Found %d streams for category %s", len(items), category_id,
                )
                return category_id, items

        outcomes = await asyncio.gather(*(fetch_one(cid) for cid in unique_ids))

        for category_id, items in outcomes:
            if items is None:
                result.failed_categories.append(category_id)
            else:
                result.items_by_category[category_id] = items

        logger.info(
            "Fetched %d streams across %d categories (%d failed)",
            len(result.items),
            len(result.items_by_category),
            len(result.failed_categories),
        )
        return result

    async def search_categories(self, query: str) -> list[Category]:
        """Search categories by name (first 10 results)."""
        if not query.strip():
            return []
        body = await self._get(
            "/search/categories", {"query": query, "first": SEARCH_PAGE_SIZE},
        )
        return [Category.from_api(raw) for raw in body.get("data") or []]

    async def get_category(self, category_id: str) -> Category | None:
        """Look up a category by id; None if unknown or the lookup fails."""
        try:
            body = await self._get("/games", {"id": category_id})
        except CatalogError as e:
            logger.warning("Category lookup failed for %s: %s", category_id, e)
            return None
        data = body.get("data") or []
        return Category.from_api(data[0]) if data else None
