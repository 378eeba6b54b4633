"""
OpenTelemetry spans for the discovery and cleanup cycles.

Spans emitted by the service:

    discovery.cycle    dedup_scope, discovery.new_items/sent/failed
    discovery.deliver  subscription_id (one per webhook delivery)
    cleanup.cycle      cleanup.removed

Tracing is off unless ``TRACING_ENABLED`` is set; ``get_tracer`` then hands
out no-op tracers, so the cycles never check whether tracing is on. When it
is on, log lines written inside a span carry its ``trace_id`` and
``span_id`` (see ``add_trace_context``).
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SimpleSpanProcessor,
    SpanExporter,
)
from opentelemetry.trace import Span, Tracer

from twitch_notifier import __version__
from twitch_notifier.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)

DEFAULT_OTLP_ENDPOINT = "http://localhost:4317"


def setup_tracing(
    service_name: str,
    otlp_endpoint: str | None = None,
    *,
    environment: str | None = None,
    exporter: SpanExporter | None = None,
) -> TracerProvider:
    """
    Install the global TracerProvider.

    Spans go to an OTLP gRPC collector in batches. A custom ``exporter``
    (e.g. ``InMemorySpanExporter`` in tests) is exported synchronously
    instead.
    """
    attributes = {"service.name": service_name, "service.version": __version__}
    if environment:
        attributes["deployment.environment"] = environment
    provider = TracerProvider(resource=Resource.create(attributes))

    if exporter is None:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )

        destination = otlp_endpoint or DEFAULT_OTLP_ENDPOINT
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=destination, insecure=True))
        )
    else:
        destination = type(exporter).__name__
        provider.add_span_processor(SimpleSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    logger.info("Tracing enabled for %s, exporting to %s", service_name, destination)
    return provider


def configure_tracing(settings: Settings | None = None) -> TracerProvider | None:
    """Set up tracing from settings; returns None when it is disabled."""
    settings = settings or get_settings()
    if not settings.tracing_enabled:
        return None
    return setup_tracing(
        settings.otel_service_name,
        settings.otel_exporter_otlp_endpoint,
        environment=settings.environment,
    )


def get_tracer(name: str) -> Tracer:
    return trace.get_tracer(name)


@contextmanager
def traced(
    tracer: Tracer,
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Iterator[Span]:
    """
    Run the block inside a span named ``name``.

    An exception escaping the block is recorded on the span, which is then
    marked as an error, and re-raised.
    """
    with tracer.start_as_current_span(
        name,
        attributes=attributes,
        record_exception=True,
        set_status_on_exception=True,
    ) as span:
        yield span


def add_trace_context(
    _logger: Any, _method: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor adding the active span's ``trace_id``/``span_id``."""
    ctx = trace.get_current_span().get_span_context()
    if ctx.is_valid:
        event_dict["trace_id"] = f"{ctx.trace_id:032x}"
        event_dict["span_id"] = f"{ctx.span_id:016x}"
    return event_dict
