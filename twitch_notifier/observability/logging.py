"""
structlog setup for the worker and the CLI.

Production (``ENVIRONMENT=production``) writes one JSON object per line for
the log shipper; every other environment gets the coloured console
renderer. Modules log through either ``structlog.get_logger`` (services,
pruner, scheduler) or plain ``logging.getLogger`` (catalog, repository);
both end up on stdout.

Fields bound with ``cycle_context`` (``cycle``, ``cycle_id``) and the
active span's ``trace_id``/``span_id`` are added to every structlog line,
so all lines from one discovery or cleanup run can be pulled together.
"""

import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from structlog.types import Processor

from twitch_notifier.config.settings import get_settings
from twitch_notifier.observability.tracing import add_trace_context

# Libraries that log every request at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "asyncpg", "redis", "opentelemetry")


def setup_logging() -> None:
    """Configure structlog and the stdlib root logger from settings."""
    settings = get_settings()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_trace_context,
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.is_production:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
        force=True,
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def cycle_context(kind: str) -> Iterator[str]:
    """
    Bind ``cycle`` and a fresh ``cycle_id`` for the duration of one cycle.

    Yields the cycle id. Previously bound values are restored on exit.
    """
    cycle_id = uuid.uuid4().hex[:12]
    with structlog.contextvars.bound_contextvars(cycle=kind, cycle_id=cycle_id):
        yield cycle_id
