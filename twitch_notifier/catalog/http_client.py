"""
Retrying HTTP transport for the Twitch APIs.

``HTTPClient`` owns one ``httpx.AsyncClient`` and retries transient failures
(429, 5xx, timeouts, dropped connections) with exponential backoff. Token
handling and payload mapping live one level up in ``CredentialCache`` and
``CatalogClient``.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})

# Helix reports the bucket refill time as a unix timestamp
RATELIMIT_RESET_HEADER = "Ratelimit-Reset"


@dataclass
class RetryConfig:
    """
    Exponential backoff configuration for HTTP retries.

    Formula: min(max_backoff, base_delay * 2^attempt) * (1 + random(0, jitter_factor))
    """

    max_retries: int = 2
    max_backoff_seconds: float = 30.0
    base_delay: float = 1.0
    jitter_factor: float = 0.1

    def calculate_backoff(self, attempt: int) -> float:
        """Backoff in seconds for the 0-indexed retry ``attempt``."""
        delay = min(self.base_delay * (2**attempt), self.max_backoff_seconds)
        return delay + delay * self.jitter_factor * random.random()

    def is_retryable_status(self, status_code: int) -> bool:
        return status_code in RETRYABLE_STATUSES

    def is_retryable_exception(self, exc: Exception) -> bool:
        """Timeouts, connection failures and read errors are retryable."""
        return isinstance(
            exc, (httpx.TimeoutException, httpx.ConnectError, httpx.ReadError),
        )

    def delay_for(self, response: httpx.Response, attempt: int) -> float:
        """How long to wait before retrying after ``response``.

        A 429 carrying ``Ratelimit-Reset`` waits until the reset (capped at
        ``max_backoff_seconds``); anything else uses exponential backoff.
        """
        reset = response.headers.get(RATELIMIT_RESET_HEADER)
        if response.status_code == 429 and reset:
            try:
                wait = float(reset) - time.time()
            except ValueError:
                wait = -1.0
            if wait >= 0:
                return min(wait, self.max_backoff_seconds)
        return self.calculate_backoff(attempt)


class HTTPClientError(Exception):
    """A request failed for good (non-retryable or retries exhausted)."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class RateLimitError(HTTPClientError):
    """Still rate limited after every retry."""


class HTTPClient:
    """
    Async HTTP client with retry logic.

    Example:
        async with HTTPClient(RetryConfig(max_retries=2)) as client:
            response = await client.get(
                "https://api.twitch.tv/helix/streams",
                params={"game_id": "509658"},
                headers={"Client-Id": "..."},
            )
    """

    def __init__(
        self,
        retry_config: RetryConfig | None = None,
        timeout: float = 15.0,
    ):
        self.retry_config = retry_config or RetryConfig()
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "HTTPClient":
        self._client = httpx.AsyncClient(timeout=self.timeout)
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """
        GET ``url``, retrying transient failures.

        Raises:
            HTTPClientError: On non-retryable errors or after retries exhausted
            RateLimitError: When rate limited and retries exhausted
        """
        return await self.request("GET", url, params=params, headers=headers)

    async def post(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
        form_data: dict[str, str] | None = None,
    ) -> httpx.Response:
        """POST ``url`` with a JSON body or a URL-encoded form (OAuth token requests)."""
        return await self.request(
            "POST", url, params=params, headers=headers, json=json_body, data=form_data,
        )

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send ``method`` to ``url`` with retries; ``kwargs`` go to httpx."""
        if not self._client:
            raise RuntimeError("HTTPClient must be used as async context manager")

        attempts = self.retry_config.max_retries + 1
        for attempt in range(attempts):
            last_attempt = attempt == attempts - 1
            try:
                response = await self._client.request(method, url, **kwargs)
            except httpx.HTTPError as e:
                if not self.retry_config.is_retryable_exception(e):
                    raise HTTPClientError(f"{method} {url} failed: {e}") from e
                if last_attempt:
                    raise HTTPClientError(
                        f"{method} {url} failed after {attempts} attempts: {e}",
                    ) from e
                backoff = self.retry_config.calculate_backoff(attempt)
                logger.warning(
                    "%s for %s, attempt %d/%d, backing off %.2fs",
                    type(e).__name__, url, attempt + 1, attempts, backoff,
                )
                await asyncio.sleep(backoff)
                continue

            status = response.status_code
            if self.retry_config.is_retryable_status(status):
                if last_attempt:
                    error_cls = RateLimitError if status == 429 else HTTPClientError
                    raise error_cls(
                        f"{method} {url} returned {status} after {attempts} attempts",
                        status_code=status,
                        response_body=response.text,
                    )
                backoff = self.retry_config.delay_for(response, attempt)
                logger.warning(
                    "Retryable status %d from %s, attempt %d/%d, backing off %.2fs",
                    status, url, attempt + 1, attempts, backoff,
                )
                await asyncio.sleep(backoff)
                continue

            if status >= 400:
                raise HTTPClientError(
                    f"{method} {url} returned {status}",
                    status_code=status,
                    response_body=response.text,
                )
            return response

        # max_retries < 0
        raise HTTPClientError(f"{method} {url} was never attempted")
