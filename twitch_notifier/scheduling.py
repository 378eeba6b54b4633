"""
Schedule signals and the long-running cycle loop.

An external trigger (cron, EventBridge, the ``worker`` command) delivers an
opaque event. ``parse_signal`` classifies it once into a ``ScheduleSignal``
and ``handle_signal`` runs exactly one cycle for it.

``Scheduler`` is the in-process trigger: discovery every
``discovery_interval_seconds``, cleanup every ``cleanup_interval_seconds``.
A failing or timed-out cycle is logged and the loop carries on.
"""

import asyncio
import enum
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from twitch_notifier.config.settings import get_settings
from twitch_notifier.discovery.pruner import CleanupReport, SubscriptionPruner
from twitch_notifier.discovery.service import CycleReport, DiscoveryService
from twitch_notifier.observability.logging import cycle_context
from twitch_notifier.observability.metrics import get_metrics

logger = structlog.get_logger(__name__)

CLEANUP_EVENT_TYPE = "cleanup"


class SignalKind(str, enum.Enum):
    DISCOVERY = "discovery"
    CLEANUP = "cleanup"


@dataclass(frozen=True)
class ScheduleSignal:
    """A classified scheduling tick."""

    kind: SignalKind
    received_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @classmethod
    def discovery(cls) -> "ScheduleSignal":
        return cls(SignalKind.DISCOVERY)

    @classmethod
    def cleanup(cls) -> "ScheduleSignal":
        return cls(SignalKind.CLEANUP)


def parse_signal(event: Mapping[str, Any] | None) -> ScheduleSignal:
    """Classify an opaque trigger event.

    ``{"detail": {"type": "cleanup"}}`` or ``{"type": "cleanup"}`` is a cleanup
    tick; anything else, including a missing or malformed event, is discovery.
    """
    if isinstance(event, Mapping):
        detail = event.get("detail")
        if isinstance(detail, Mapping) and detail.get("type") == CLEANUP_EVENT_TYPE:
            return ScheduleSignal.cleanup()
        if event.get("type") == CLEANUP_EVENT_TYPE:
            return ScheduleSignal.cleanup()
    return ScheduleSignal.discovery()


async def handle_signal(
    signal: ScheduleSignal,
    discovery: DiscoveryService,
    pruner: SubscriptionPruner,
) -> CycleReport | CleanupReport:
    """Run the one cycle ``signal`` asks for and return its report."""
    logger.info("Handling schedule signal", kind=signal.kind.value)
    if signal.kind is SignalKind.CLEANUP:
        return await pruner.run_cleanup_cycle()
    return await discovery.run_discovery_cycle()


class Scheduler:
    """
    In-process trigger running both cycles at their own interval.

    Usage:
        scheduler = Scheduler(discovery, pruner)
        await scheduler.start()  # Runs until stop()
    """

    def __init__(
        self,
        discovery: DiscoveryService,
        pruner: SubscriptionPruner,
        discovery_interval: float | None = None,
        cleanup_interval: float | None = None,
        cycle_timeout: float | None = None,
    ):
        settings = get_settings()
        self._discovery = discovery
        self._pruner = pruner
        self._intervals = {
            SignalKind.DISCOVERY: discovery_interval or settings.discovery_interval_seconds,
            SignalKind.CLEANUP: cleanup_interval or settings.cleanup_interval_seconds,
        }
        self._cycle_timeout = cycle_timeout or settings.cycle_timeout_seconds
        self._running = False
        self._tasks: list[asyncio.Task] = []
        self._metrics = get_metrics()

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Run both loops until ``stop()`` is called."""
        self._running = True
        logger.info(
            "Starting scheduler",
            discovery_interval=self._intervals[SignalKind.DISCOVERY],
            cleanup_interval=self._intervals[SignalKind.CLEANUP],
            cycle_timeout=self._cycle_timeout,
        )

        self._tasks = [
            asyncio.create_task(self._run_loop(kind), name=f"scheduler_{kind.value}")
            for kind in (SignalKind.DISCOVERY, SignalKind.CLEANUP)
        ]
        try:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        except asyncio.CancelledError:
            logger.info("Scheduler cancelled")
        finally:
            self._tasks.clear()
            self._running = False
            logger.info("Scheduler stopped")

    async def stop(self) -> None:
        """Stop both loops, abandoning any cycle in flight."""
        logger.info("Stopping scheduler")
        self._running = False
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def run_cycle(
        self, signal: ScheduleSignal,
    ) -> CycleReport | CleanupReport | None:
        """Run one cycle under the cycle timeout.

        Returns None if the cycle failed or timed out. Log lines emitted
        during the cycle carry ``cycle`` and ``cycle_id``.
        """
        start = time.monotonic()
        with cycle_context(signal.kind.value):
            try:
                return await asyncio.wait_for(
                    handle_signal(signal, self._discovery, self._pruner),
                    timeout=self._cycle_timeout,
                )
            except asyncio.TimeoutError:
                logger.error(
                    "Cycle timed out",
                    kind=signal.kind.value,
                    timeout=self._cycle_timeout,
                )
                self._metrics.record_cycle(signal.kind.value, "timeout", time.monotonic() - start)
            except Exception as e:
                logger.error("Cycle failed", kind=signal.kind.value, error=str(e))
        return None

    async def _run_loop(self, kind: SignalKind) -> None:
        interval = self._intervals[kind]
        logger.info("Starting cycle loop", kind=kind.value, interval=interval)

        while self._running:
            try:
                await self.run_cycle(ScheduleSignal(kind))
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                break

        logger.info("Cycle loop stopped", kind=kind.value)
