"""
Prometheus metrics for monitoring discovery and cleanup cycles.

Defines and exposes metrics for:
- Cycle outcomes and latency
- Catalog fetch errors per category
- Notification delivery outcomes
- Subscriptions pruned

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from twitch_notifier.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for cycle latency histograms (in seconds)
CYCLE_BUCKETS = (0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0)
LATENCY_BUCKETS = (0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the twitch-notifier cycles.

    Usage:
        metrics = get_metrics()
        metrics.start_server()

        metrics.record_cycle("discovery", "success", 1.2)
        metrics.record_delivery(success=True)
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        self.cycles = Counter(
            "twitch_notifier_cycles_total",
            "Total scheduler cycles run",
            ["kind", "status"],  # kind: discovery, cleanup; status: success, error, timeout
        )

        self.cycle_latency = Histogram(
            "twitch_notifier_cycle_latency_seconds",
            "Wall-clock duration of a cycle",
            ["kind"],
            buckets=CYCLE_BUCKETS,
        )

        self.catalog_requests = Counter(
            "twitch_notifier_catalog_requests_total",
            "Catalog requests by outcome",
            ["status"],  # success, error
        )

        self.catalog_latency = Histogram(
            "twitch_notifier_catalog_latency_seconds",
            "Time to fetch live items for one category",
            buckets=LATENCY_BUCKETS,
        )

        self.live_items_seen = Counter(
            "twitch_notifier_live_items_seen_total",
            "Live items returned by the catalog",
        )

        self.items_discovered = Counter(
            "twitch_notifier_items_discovered_total",
            "Live items newly marked as discovered",
        )

        self.notifications = Counter(
            "twitch_notifier_notifications_total",
            "Notification delivery attempts by outcome",
            ["status"],  # sent, failed
        )

        self.subscriptions_pruned = Counter(
            "twitch_notifier_subscriptions_pruned_total",
            "Subscriptions deleted by the cleanup cycle",
        )

        self.tracked_subscriptions = Gauge(
            "twitch_notifier_tracked_subscriptions",
            "Subscriptions loaded by the last discovery cycle",
        )

        self.tracked_categories = Gauge(
            "twitch_notifier_tracked_categories",
            "Distinct categories polled by the last discovery cycle",
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info(f"Prometheus metrics server started on port {port}")

    # Convenience methods

    def record_cycle(self, kind: str, status: str, latency: float) -> None:
        """
        Record the outcome and duration of one cycle.

        Args:
            kind: "discovery" or "cleanup"
            status: "success" or "error"
            latency: Duration in seconds
        """
        self.cycles.labels(kind=kind, status=status).inc()
        if latency > 0:
            self.cycle_latency.labels(kind=kind).observe(latency)

    def record_catalog_request(self, success: bool, latency: float) -> None:
        """Record one per-category catalog request."""
        self.catalog_requests.labels(status="success" if success else "error").inc()
        if latency > 0:
            self.catalog_latency.observe(latency)

    def record_delivery(self, success: bool) -> None:
        """Record one notification delivery attempt."""
        self.notifications.labels(status="sent" if success else "failed").inc()

    def set_tracked(self, subscriptions: int, categories: int) -> None:
        """Set the size of the tracked subscription/category sets."""
        self.tracked_subscriptions.set(subscriptions)
        self.tracked_categories.set(categories)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
