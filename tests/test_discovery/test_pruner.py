"""Tests for SubscriptionPruner."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from twitch_notifier.discovery.config import CleanupConfig
from twitch_notifier.discovery.pruner import CleanupReport, SubscriptionPruner
from twitch_notifier.subscriptions.repository import SubscriptionRepository

NOW = datetime(2026, 2, 7, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def repo():
    r = AsyncMock(spec=SubscriptionRepository)
    r.list_all.return_value = []
    r.delete_if_prunable.return_value = True
    return r


@pytest.fixture
def pruner(repo):
    return SubscriptionPruner(repo, CleanupConfig())


class TestIsPrunable:
    def test_failing_and_stale_is_prunable(self, pruner, subscription_factory):
        sub = subscription_factory(failure_count=10, last_success=NOW - timedelta(days=8))
        assert pruner.is_prunable(sub, NOW)

    def test_recent_success_is_retained(self, pruner, subscription_factory):
        sub = subscription_factory(failure_count=10, last_success=NOW - timedelta(days=6))
        assert not pruner.is_prunable(sub, NOW)

    def test_below_failure_threshold_is_retained(self, pruner, subscription_factory):
        sub = subscription_factory(failure_count=9, last_success=NOW - timedelta(days=30))
        assert not pruner.is_prunable(sub, NOW)

    def test_never_successful_uses_created_at(self, pruner, subscription_factory):
        old = subscription_factory(failure_count=12, created_at=NOW - timedelta(days=8))
        young = subscription_factory(failure_count=12, created_at=NOW - timedelta(days=2))
        assert pruner.is_prunable(old, NOW)
        assert not pruner.is_prunable(young, NOW)

    def test_thresholds_come_from_config(self, repo, subscription_factory):
        pruner = SubscriptionPruner(repo, CleanupConfig(max_failure_count=3, failure_timeout_days=1))
        sub = subscription_factory(failure_count=3, last_success=NOW - timedelta(days=2))
        assert pruner.is_prunable(sub, NOW)


class TestRunCleanupCycle:
    @pytest.mark.asyncio
    async def test_removes_only_prunable(self, pruner, repo, subscription_factory):
        stale = subscription_factory("stale", failure_count=10, last_success=NOW - timedelta(days=8))
        fresh = subscription_factory("fresh", failure_count=10, last_success=NOW - timedelta(days=6))
        healthy = subscription_factory("healthy", failure_count=0)
        repo.list_all.return_value = [stale, fresh, healthy]

        report = await pruner.run_cleanup_cycle(now=NOW)

        assert report.scanned == 3
        assert report.removed == 1
        repo.delete_if_prunable.assert_awaited_once_with(
            stale.owner_key, "stale", 10, NOW - timedelta(days=7),
        )

    @pytest.mark.asyncio
    async def test_delete_failure_is_counted(self, pruner, repo, subscription_factory):
        a = subscription_factory("a", failure_count=10, last_success=NOW - timedelta(days=8))
        b = subscription_factory("b", failure_count=10, last_success=NOW - timedelta(days=9))
        repo.list_all.return_value = [a, b]
        repo.delete_if_prunable.side_effect = [ConnectionError("db blip"), True]

        report = await pruner.run_cleanup_cycle(now=NOW)

        assert report.errors == 1
        assert report.removed == 1

    @pytest.mark.asyncio
    async def test_already_deleted_not_counted(self, pruner, repo, subscription_factory):
        repo.list_all.return_value = [
            subscription_factory(failure_count=10, last_success=NOW - timedelta(days=8)),
        ]
        repo.delete_if_prunable.return_value = False

        report = await pruner.run_cleanup_cycle(now=NOW)

        assert report.removed == 0
        assert report.errors == 0

    @pytest.mark.asyncio
    async def test_scan_failure_propagates(self, pruner, repo):
        repo.list_all.side_effect = ConnectionError("db down")

        with pytest.raises(ConnectionError):
            await pruner.run_cleanup_cycle(now=NOW)

    @pytest.mark.asyncio
    async def test_empty_table(self, pruner, repo):
        report = await pruner.run_cleanup_cycle(now=NOW)

        assert report == CleanupReport(elapsed_seconds=report.elapsed_seconds)
        repo.delete_if_prunable.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete_rechecks_condition_in_sql(self, subscription_factory):
        db = AsyncMock()
        db.execute.return_value = "DELETE 0"
        stale = subscription_factory(failure_count=10, last_success=NOW - timedelta(days=8))
        repo = SubscriptionRepository(db)
        repo.list_all = AsyncMock(return_value=[stale])

        report = await SubscriptionPruner(repo, CleanupConfig()).run_cleanup_cycle(now=NOW)

        sql, *params = db.execute.call_args[0]
        assert "failure_count >= $3" in sql
        assert "COALESCE(last_success, created_at) < $4" in sql
        assert params == [stale.owner_key, stale.subscription_id, 10, NOW - timedelta(days=7)]
        assert report.removed == 0
