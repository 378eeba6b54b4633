"""App access token cache for the Twitch Helix API.

The cached credential is an immutable ``AccessToken`` that is swapped in
whole, so readers never observe a half-updated token. Refreshes are
serialized by an ``asyncio.Lock`` and re-check validity after acquiring it,
so concurrent callers trigger at most one token request.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from twitch_notifier.catalog.errors import CredentialError
from twitch_notifier.catalog.http_client import HTTPClient, HTTPClientError

logger = logging.getLogger(__name__)

# Refresh this many seconds before the token actually expires
DEFAULT_REFRESH_MARGIN_SECONDS = 60.0


@dataclass(frozen=True)
class AccessToken:
    """An app access token and the monotonic time it stops being usable."""

    value: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at


class CredentialCache:
    """Lazily refreshed client-credentials token.

    Args:
        http: Open HTTPClient used for the token request.
        client_id: Twitch application client id.
        client_secret: Twitch application client secret.
        auth_url: OAuth2 token endpoint.
        refresh_margin: Seconds subtracted from ``expires_in``.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        http: HTTPClient,
        client_id: str | None,
        client_secret: str | None,
        auth_url: str = "https://id.twitch.tv/oauth2/token",
        refresh_margin: float = DEFAULT_REFRESH_MARGIN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._http = http
        self._client_id = client_id
        self._client_secret = client_secret
        self._auth_url = auth_url
        self._refresh_margin = refresh_margin
        self._clock = clock
        self._token: AccessToken | None = None
        self._lock = asyncio.Lock()

    @property
    def token(self) -> AccessToken | None:
        """Currently cached token, valid or not."""
        return self._token

    async def get_token(self) -> str:
        """Return a valid access token, refreshing it if expired.

        Raises:
            CredentialError: If credentials are missing or the token
                endpoint rejects the request.
        """
        token = self._token
        if token is not None and token.is_valid(self._clock()):
            return token.value

        async with self._lock:
            token = self._token
            if token is not None and token.is_valid(self._clock()):
                return token.value
            token = await self._request_token()
            self._token = token
            return token.value

    def invalidate(self) -> None:
        """Drop the cached token so the next call fetches a fresh one."""
        if self._token is not None:
            logger.info("Invalidating cached Twitch access token")
        self._token = None

    async def _request_token(self) -> AccessToken:
        if not self._client_id or not self._client_secret:
            raise CredentialError("Twitch client id/secret are not configured")

        try:
            response = await self._http.post(
                self._auth_url,
                form_data={
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "grant_type": "client_credentials",
                },
            )
            payload = response.json()
        except HTTPClientError as e:
            raise CredentialError(
                f"Failed to get Twitch access token: {e}",
                status_code=e.status_code,
            ) from e
        except ValueError as e:
            raise CredentialError(f"Malformed token response: {e}") from e

        access_token = payload.get("access_token")
        if not access_token:
            raise CredentialError("Token response did not contain access_token")

        expires_in = float(payload.get("expires_in") or 0)
        lifetime = max(expires_in - self._refresh_margin, 0.0)
        logger.info("Obtained Twitch access token (valid for %.0fs)", lifetime)
        return AccessToken(value=access_token, expires_at=self._clock() + lifetime)
