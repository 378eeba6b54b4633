"""Tests for the Discord webhook sink."""

import json

import httpx
import pytest

from twitch_notifier.notifications.config import SinkConfig
from twitch_notifier.notifications.sink import DeliveryError, DiscordWebhookSink

WEBHOOK = "https://discord.com/api/webhooks/123/token"


@pytest.fixture
def sink():
    return DiscordWebhookSink(SinkConfig())


class TestBuildPayload:
    def test_embed_fields(self, sink, item_factory):
        item = item_factory(viewer_count=12345, tags=("English", "Speedrun"), language="en")

        payload = sink.build_payload(item)
        embed = payload["embeds"][0]

        assert embed["title"] == "🔴 SpeedRunner is now live playing Just Chatting!"
        assert embed["description"] == "Any% world record attempts"
        assert embed["url"] == "https://twitch.tv/speedrunner"
        assert embed["color"] == 0x9146FF
        assert embed["thumbnail"]["url"].endswith("speedrunner-320x180.jpg")
        assert embed["timestamp"] == "2026-02-07T12:00:00+00:00"
        fields = {f["name"]: f["value"] for f in embed["fields"]}
        assert fields["👥 Viewers"] == "12,345"
        assert fields["🌐 Language"] == "EN"
        assert fields["🏷️ Tags"] == "English, Speedrun"

    def test_no_tags_field_without_tags(self, sink, item_factory):
        embed = sink.build_payload(item_factory(tags=()))["embeds"][0]

        assert len(embed["fields"]) == 2

    def test_category_name_fallback(self, sink, item_factory):
        item = item_factory(category_name="")

        embed = sink.build_payload(item, category_name="Chess")["embeds"][0]

        assert embed["title"].endswith("playing Chess!")

    def test_configured_color_and_thumbnail(self, item_factory):
        sink = DiscordWebhookSink(SinkConfig(embed_color=0xFF0000, thumbnail_width=640, thumbnail_height=360))

        embed = sink.build_payload(item_factory())["embeds"][0]

        assert embed["color"] == 0xFF0000
        assert embed["thumbnail"]["url"].endswith("-640x360.jpg")


class TestDeliver:
    @pytest.mark.asyncio
    async def test_success(self, sink, live_item, respx_mock):
        route = respx_mock.post(WEBHOOK).mock(return_value=httpx.Response(204))

        await sink.deliver(WEBHOOK, live_item)

        body = json.loads(route.calls.last.request.content)
        assert body["embeds"][0]["url"] == "https://twitch.tv/speedrunner"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 404, 429, 500])
    async def test_non_success_raises(self, sink, live_item, respx_mock, status):
        respx_mock.post(WEBHOOK).mock(return_value=httpx.Response(status))

        with pytest.raises(DeliveryError) as exc_info:
            await sink.deliver(WEBHOOK, live_item)

        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    async def test_transport_error_raises(self, sink, live_item, respx_mock):
        respx_mock.post(WEBHOOK).mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(DeliveryError) as exc_info:
            await sink.deliver(WEBHOOK, live_item)

        assert exc_info.value.status_code is None


class TestValidate:
    @pytest.mark.asyncio
    async def test_reachable(self, sink, respx_mock):
        respx_mock.get(WEBHOOK).mock(return_value=httpx.Response(200, json={"id": "123"}))

        assert await sink.validate(WEBHOOK) is True

    @pytest.mark.asyncio
    async def test_unknown_webhook(self, sink, respx_mock):
        respx_mock.get(WEBHOOK).mock(return_value=httpx.Response(404))

        assert await sink.validate(WEBHOOK) is False

    @pytest.mark.asyncio
    async def test_transport_error_returns_false(self, sink, respx_mock):
        respx_mock.get(WEBHOOK).mock(side_effect=httpx.ConnectTimeout("slow"))

        assert await sink.validate(WEBHOOK) is False
