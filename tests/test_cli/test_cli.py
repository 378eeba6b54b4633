"""Tests for the twitch-notifier CLI."""

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from twitch_notifier.catalog.schemas import Category
from twitch_notifier.cli import Runtime, main
from twitch_notifier.discovery.pruner import CleanupReport, SubscriptionPruner
from twitch_notifier.discovery.service import CycleReport
from twitch_notifier.discovery.status import StatusReport


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def runtime():
    pruner = MagicMock(spec=SubscriptionPruner)
    pruner.run_cleanup_cycle = AsyncMock(return_value=CleanupReport(scanned=5, removed=1))
    return Runtime(
        database=AsyncMock(),
        redis=AsyncMock(),
        subscriptions=AsyncMock(),
        catalog=AsyncMock(),
        discovery=AsyncMock(**{"run_discovery_cycle.return_value": CycleReport(new_items=2, sent=3)}),
        pruner=pruner,
        status=AsyncMock(),
    )


@pytest.fixture
def patched_runtime(runtime):
    @asynccontextmanager
    async def fake_open_runtime():
        yield runtime

    with patch("twitch_notifier.cli.open_runtime", fake_open_runtime):
        yield runtime


class TestCycleCommands:
    def test_discover(self, runner, patched_runtime):
        result = runner.invoke(main, ["discover"])

        assert result.exit_code == 0, result.output
        assert "new_items: 2" in result.output
        assert "sent: 3" in result.output
        patched_runtime.discovery.run_discovery_cycle.assert_awaited_once()

    def test_cleanup(self, runner, patched_runtime):
        result = runner.invoke(main, ["cleanup"])

        assert result.exit_code == 0, result.output
        assert "removed: 1" in result.output

    def test_cleanup_dry_run_deletes_nothing(self, runner, patched_runtime, subscription_factory):
        stale = subscription_factory(
            "stale",
            failure_count=11,
            last_success=datetime.now(timezone.utc) - timedelta(days=30),
        )
        patched_runtime.subscriptions.list_all.return_value = [stale, subscription_factory("ok")]
        patched_runtime.pruner.is_prunable.side_effect = lambda sub, now: sub is stale

        result = runner.invoke(main, ["cleanup", "--dry-run"])

        assert result.exit_code == 0, result.output
        assert "would remove 1 of 2" in result.output
        assert "stale" in result.output
        patched_runtime.pruner.run_cleanup_cycle.assert_not_called()

    def test_handle_cleanup_event(self, runner, patched_runtime):
        result = runner.invoke(main, ["handle-event", '{"detail": {"type": "cleanup"}}'])

        assert result.exit_code == 0, result.output
        assert "Cleanup cycle complete" in result.output
        patched_runtime.discovery.run_discovery_cycle.assert_not_called()

    def test_handle_event_defaults_to_discovery(self, runner, patched_runtime):
        result = runner.invoke(main, ["handle-event"])

        assert result.exit_code == 0, result.output
        assert "Discovery cycle complete" in result.output

    def test_handle_event_rejects_bad_json(self, runner, patched_runtime):
        result = runner.invoke(main, ["handle-event", "{not json"])

        assert result.exit_code == 2
        assert "not valid JSON" in result.output


class TestUtilityCommands:
    def test_validate_webhook_ok(self, runner):
        with patch(
            "twitch_notifier.notifications.DiscordWebhookSink.validate",
            AsyncMock(return_value=True),
        ):
            result = runner.invoke(main, ["validate-webhook", "https://discord.com/api/webhooks/1/x"])

        assert result.exit_code == 0
        assert "reachable" in result.output

    def test_validate_webhook_unreachable(self, runner):
        with patch(
            "twitch_notifier.notifications.DiscordWebhookSink.validate",
            AsyncMock(return_value=False),
        ):
            result = runner.invoke(main, ["validate-webhook", "https://example.invalid"])

        assert result.exit_code == 1
        assert "not reachable" in result.output

    def test_search_categories(self, runner):
        catalog = MagicMock()
        catalog.__aenter__ = AsyncMock(return_value=catalog)
        catalog.__aexit__ = AsyncMock(return_value=False)
        catalog.search_categories = AsyncMock(return_value=[Category("509658", "Just Chatting")])

        with patch(
            "twitch_notifier.catalog.client.CatalogClient.from_settings",
            return_value=catalog,
        ):
            result = runner.invoke(main, ["search-categories", "chat"])

        assert result.exit_code == 0, result.output
        assert "509658" in result.output
        assert "Just Chatting" in result.output
        catalog.search_categories.assert_awaited_once_with("chat")

    def test_status_json(self, runner):
        report = StatusReport(
            last_poll_time=None,
            time_since_last_poll="Never",
            subscription_count=3,
            notifications_sent_today=0,
            failed_notifications_today=0,
        )
        with patch("twitch_notifier.storage.database.Database") as db_cls, \
                patch("twitch_notifier.storage.database.create_redis_client") as redis_factory, \
                patch("twitch_notifier.discovery.StatusService") as status_cls:
            db_cls.return_value = AsyncMock()
            redis_factory.return_value = AsyncMock()
            status_cls.return_value.get_status = AsyncMock(return_value=report)

            result = runner.invoke(main, ["status", "--json"])

        assert result.exit_code == 0, result.output
        assert '"time_since_last_poll": "Never"' in result.output
        assert '"subscription_count": 3' in result.output
