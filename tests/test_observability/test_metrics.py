"""Tests for the Prometheus metrics collector."""

from prometheus_client import REGISTRY

from twitch_notifier.observability.metrics import get_metrics


def _value(name: str, labels: dict | None = None) -> float:
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


def test_singleton():
    assert get_metrics() is get_metrics()


def test_record_cycle():
    metrics = get_metrics()
    before = _value("twitch_notifier_cycles_total", {"kind": "cleanup", "status": "success"})

    metrics.record_cycle("cleanup", "success", 0.5)

    after = _value("twitch_notifier_cycles_total", {"kind": "cleanup", "status": "success"})
    assert after == before + 1


def test_record_delivery():
    metrics = get_metrics()
    sent = _value("twitch_notifier_notifications_total", {"status": "sent"})
    failed = _value("twitch_notifier_notifications_total", {"status": "failed"})

    metrics.record_delivery(True)
    metrics.record_delivery(False)
    metrics.record_delivery(False)

    assert _value("twitch_notifier_notifications_total", {"status": "sent"}) == sent + 1
    assert _value("twitch_notifier_notifications_total", {"status": "failed"}) == failed + 2


def test_set_tracked():
    get_metrics().set_tracked(subscriptions=12, categories=3)

    assert _value("twitch_notifier_tracked_subscriptions") == 12
    assert _value("twitch_notifier_tracked_categories") == 3
