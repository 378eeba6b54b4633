"""Observability layer - logging, metrics, and tracing."""

from twitch_notifier.observability.logging import setup_logging
from twitch_notifier.observability.metrics import MetricsCollector, get_metrics
from twitch_notifier.observability.tracing import configure_tracing, get_tracer, setup_tracing

__all__ = [
    "setup_logging",
    "MetricsCollector",
    "get_metrics",
    "configure_tracing",
    "setup_tracing",
    "get_tracer",
]
