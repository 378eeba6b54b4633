"""Tests for structlog setup and cycle log context."""

import json
import logging

import pytest
import structlog

from twitch_notifier.config.settings import get_settings
from twitch_notifier.observability.logging import cycle_context, setup_logging


@pytest.fixture
def production_logging(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("LOG_LEVEL", "INFO")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    structlog.reset_defaults()
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)


class TestCycleContext:
    def test_binds_and_restores(self):
        structlog.contextvars.clear_contextvars()

        with cycle_context("discovery") as cycle_id:
            bound = structlog.contextvars.get_contextvars()
            assert bound == {"cycle": "discovery", "cycle_id": cycle_id}
            assert len(cycle_id) == 12

        assert structlog.contextvars.get_contextvars() == {}

    def test_each_cycle_gets_new_id(self):
        with cycle_context("cleanup") as first:
            pass
        with cycle_context("cleanup") as second:
            pass

        assert first != second


class TestSetupLogging:
    def test_production_writes_json_with_cycle_fields(self, production_logging, capsys):
        setup_logging()
        logger = structlog.get_logger("twitch_notifier.test")

        with cycle_context("discovery") as cycle_id:
            logger.info("Discovery cycle complete", sent=2)

        line = capsys.readouterr().out.strip().splitlines()[-1]
        event = json.loads(line)
        assert event["event"] == "Discovery cycle complete"
        assert event["sent"] == 2
        assert event["cycle"] == "discovery"
        assert event["cycle_id"] == cycle_id
        assert event["level"] == "info"

    def test_noisy_libraries_quietened(self, production_logging):
        setup_logging()

        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("asyncpg").level == logging.WARNING
