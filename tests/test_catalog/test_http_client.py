"""Tests for the retrying HTTP transport."""

import httpx
import pytest
import respx

from twitch_notifier.catalog.http_client import (
    HTTPClient,
    HTTPClientError,
    RateLimitError,
    RetryConfig,
)

URL = "https://api.twitch.tv/helix/streams"
FAST = RetryConfig(max_retries=2, base_delay=0.01, jitter_factor=0.0)


class TestRetryConfig:
    def test_default_values(self):
        config = RetryConfig()

        assert config.max_retries == 2
        assert config.max_backoff_seconds == 30.0
        assert config.base_delay == 1.0

    def test_backoff_is_exponential_and_capped(self):
        config = RetryConfig(base_delay=1.0, max_backoff_seconds=5.0, jitter_factor=0.0)

        assert [config.calculate_backoff(n) for n in range(5)] == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_retryable_statuses(self):
        config = RetryConfig()

        assert all(config.is_retryable_status(s) for s in (429, 500, 502, 503, 504))
        assert not any(config.is_retryable_status(s) for s in (200, 400, 401, 404))

    def test_retryable_exceptions(self):
        config = RetryConfig()

        assert config.is_retryable_exception(httpx.ConnectError("refused"))
        assert config.is_retryable_exception(httpx.ReadTimeout("slow"))
        assert not config.is_retryable_exception(ValueError("bad"))


class TestHTTPClient:
    @pytest.mark.asyncio
    async def test_requires_context_manager(self):
        with pytest.raises(RuntimeError):
            await HTTPClient().get(URL)

    @pytest.mark.asyncio
    @respx.mock
    async def test_get_with_params_and_headers(self):
        route = respx.get(URL).mock(return_value=httpx.Response(200, json={"data": []}))

        async with HTTPClient() as client:
            response = await client.get(
                URL, params={"game_id": "1", "first": 100}, headers={"Client-Id": "abc"},
            )

        assert response.json() == {"data": []}
        request = route.calls.last.request
        assert request.url.params["game_id"] == "1"
        assert request.headers["Client-Id"] == "abc"

    @pytest.mark.asyncio
    @respx.mock
    async def test_post_form_data(self):
        route = respx.post("https://id.twitch.tv/oauth2/token").mock(
            return_value=httpx.Response(200, json={})
        )

        async with HTTPClient() as client:
            await client.post(
                "https://id.twitch.tv/oauth2/token",
                form_data={"grant_type": "client_credentials"},
            )

        request = route.calls.last.request
        assert request.headers["content-type"] == "application/x-www-form-urlencoded"
        assert request.content == b"grant_type=client_credentials"

    @pytest.mark.asyncio
    @respx.mock
    async def test_retry_on_500_then_success(self):
        route = respx.get(URL).mock(side_effect=[
            httpx.Response(500),
            httpx.Response(200, json={"ok": True}),
        ])

        async with HTTPClient(retry_config=FAST) as client:
            response = await client.get(URL)

        assert response.status_code == 200
        assert route.call_count == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_rate_limit_error_after_retries(self):
        route = respx.get(URL).mock(return_value=httpx.Response(429, text="slow down"))

        async with HTTPClient(retry_config=FAST) as client:
            with pytest.raises(RateLimitError) as exc_info:
                await client.get(URL)

        assert exc_info.value.status_code == 429
        assert route.call_count == 3

    @pytest.mark.asyncio
    @respx.mock
    async def test_no_retry_on_401(self):
        route = respx.get(URL).mock(return_value=httpx.Response(401, text="Unauthorized"))

        async with HTTPClient(retry_config=FAST) as client:
            with pytest.raises(HTTPClientError) as exc_info:
                await client.get(URL)

        assert route.call_count == 1
        assert exc_info.value.status_code == 401
        assert exc_info.value.response_body == "Unauthorized"

    @pytest.mark.asyncio
    @respx.mock
    async def test_connect_error_exhausts_retries(self):
        route = respx.get(URL).mock(side_effect=httpx.ConnectError("refused"))

        async with HTTPClient(retry_config=FAST) as client:
            with pytest.raises(HTTPClientError):
                await client.get(URL)

        assert route.call_count == 3

    @pytest.mark.asyncio
    @respx.mock
    async def test_protocol_error_is_wrapped_without_retry(self):
        route = respx.get(URL).mock(side_effect=httpx.RemoteProtocolError("garbage"))

        async with HTTPClient(retry_config=FAST) as client:
            with pytest.raises(HTTPClientError):
                await client.get(URL)

        assert route.call_count == 1


class TestRateLimitDelay:
    def test_waits_until_ratelimit_reset(self, monkeypatch):
        monkeypatch.setattr("twitch_notifier.catalog.http_client.time.time", lambda: 1000.0)
        config = RetryConfig(max_backoff_seconds=30.0, jitter_factor=0.0)
        response = httpx.Response(429, headers={"Ratelimit-Reset": "1004"})

        assert config.delay_for(response, attempt=0) == 4.0

    def test_reset_is_capped(self, monkeypatch):
        monkeypatch.setattr("twitch_notifier.catalog.http_client.time.time", lambda: 1000.0)
        config = RetryConfig(max_backoff_seconds=5.0, jitter_factor=0.0)
        response = httpx.Response(429, headers={"Ratelimit-Reset": "2000"})

        assert config.delay_for(response, attempt=0) == 5.0

    @pytest.mark.parametrize(
        "status,headers",
        [
            (429, {}),
            (429, {"Ratelimit-Reset": "soon"}),
            (503, {"Ratelimit-Reset": "1004"}),
        ],
    )
    def test_falls_back_to_backoff(self, monkeypatch, status, headers):
        monkeypatch.setattr("twitch_notifier.catalog.http_client.time.time", lambda: 1000.0)
        config = RetryConfig(base_delay=1.0, jitter_factor=0.0)

        assert config.delay_for(httpx.Response(status, headers=headers), attempt=1) == 2.0
