"""
Command-line interface for twitch-notifier.

Provides commands to run the discovery and cleanup cycles, the long-running
scheduler, database setup and diagnostic checks.

Usage:
    twitch-notifier discover          # Run one discovery cycle
    twitch-notifier cleanup           # Run one cleanup cycle
    twitch-notifier worker            # Run both cycles on their intervals
    twitch-notifier handle-event EVT  # Classify a trigger event and run it
    twitch-notifier init-db           # Initialize database
    twitch-notifier status            # Last poll time and today's deliveries
    twitch-notifier health            # Check service health
"""

import asyncio
import json
import signal
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import click

from twitch_notifier.config.settings import get_settings
from twitch_notifier.observability.logging import setup_logging
from twitch_notifier.observability.metrics import get_metrics
from twitch_notifier.observability.tracing import configure_tracing


@dataclass
class Runtime:
    """Wired collaborators shared by the cycle commands."""

    database: Any
    redis: Any
    subscriptions: Any
    catalog: Any
    discovery: Any
    pruner: Any
    status: Any


@asynccontextmanager
async def open_runtime() -> AsyncIterator[Runtime]:
    """Connect the stores and open the catalog client for the duration."""
    from twitch_notifier.catalog.client import CatalogClient
    from twitch_notifier.discovery import (
        CleanupConfig,
        DeliveryCounterStore,
        DiscoveryConfig,
        DiscoveryService,
        MarkerStore,
        StatusService,
        SubscriptionPruner,
    )
    from twitch_notifier.notifications import DiscordWebhookSink
    from twitch_notifier.storage.database import Database, create_redis_client
    from twitch_notifier.subscriptions.repository import SubscriptionRepository

    config = DiscoveryConfig()
    db = Database()
    await db.connect()
    redis_client = create_redis_client()

    try:
        repo = SubscriptionRepository(db)
        counters = DeliveryCounterStore(redis_client, ttl_seconds=config.counter_ttl_seconds)
        status = StatusService(redis_client, repo, counters)
        catalog = CatalogClient.from_settings(
            page_size=config.page_size,
            concurrency=config.category_concurrency,
        )
        async with catalog:
            discovery = DiscoveryService(
                subscriptions=repo,
                catalog=catalog,
                sink=DiscordWebhookSink(),
                markers=MarkerStore(redis_client),
                counters=counters,
                status=status,
                config=config,
            )
            pruner = SubscriptionPruner(repo, CleanupConfig())
            yield Runtime(
                database=db,
                redis=redis_client,
                subscriptions=repo,
                catalog=catalog,
                discovery=discovery,
                pruner=pruner,
                status=status,
            )
    finally:
        await redis_client.aclose()
        await db.close()


def _echo_report(title: str, report: Any) -> None:
    click.echo(f"\n{title}")
    click.echo("-" * 40)
    for name, value in report.to_dict().items():
        click.echo(f"  {name}: {value}")


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Twitch Notifier - Live stream notifications for Discord webhooks."""
    if debug:
        import os
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    setup_logging()
    configure_tracing()


@main.command()
def discover() -> None:
    """Run a single discovery cycle."""

    async def run():
        async with open_runtime() as rt:
            return await rt.discovery.run_discovery_cycle()

    report = asyncio.run(run())
    _echo_report("Discovery cycle complete:", report)


@main.command()
@click.option("--dry-run", is_flag=True, help="List prunable subscriptions without deleting")
def cleanup(dry_run: bool) -> None:
    """Remove subscriptions whose webhooks keep failing.

    Example:
        twitch-notifier cleanup            # Delete prunable subscriptions
        twitch-notifier cleanup --dry-run  # Preview without deleting
    """

    async def run():
        async with open_runtime() as rt:
            if not dry_run:
                return await rt.pruner.run_cleanup_cycle()

            now = datetime.now(timezone.utc)
            subscriptions = await rt.subscriptions.list_all()
            prunable = [s for s in subscriptions if rt.pruner.is_prunable(s, now)]
            click.echo(f"\nDry run - would remove {len(prunable)} of {len(subscriptions)} subscriptions")
            for sub in prunable:
                click.echo(
                    f"  {sub.owner_key}/{sub.subscription_id}  "
                    f"category={sub.category_id}  failures={sub.failure_count}  "
                    f"last_activity={sub.last_activity.isoformat()}"
                )
            click.echo("\nRun without --dry-run to actually delete.")
            return None

    report = asyncio.run(run())
    if report is not None:
        _echo_report("Cleanup cycle complete:", report)


@main.command()
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def worker(metrics: bool, metrics_port: int | None) -> None:
    """Run discovery and cleanup cycles on their intervals."""
    from twitch_notifier.scheduling import Scheduler

    async def run():
        async with open_runtime() as rt:
            scheduler = Scheduler(rt.discovery, rt.pruner)

            if metrics:
                get_metrics().start_server(port=metrics_port)

            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, lambda: asyncio.create_task(scheduler.stop()))

            await scheduler.start()

    asyncio.run(run())


@main.command("handle-event")
@click.argument("event", required=False)
@click.option("--file", "event_file", type=click.File("r"), help="Read the event JSON from a file")
def handle_event(event: str | None, event_file: Any) -> None:
    """Classify a trigger EVENT (JSON) and run the matching cycle.

    Example:
        twitch-notifier handle-event '{"detail": {"type": "cleanup"}}'
    """
    from twitch_notifier.scheduling import handle_signal, parse_signal

    raw = event_file.read() if event_file else event
    try:
        payload = json.loads(raw) if raw else None
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"Event is not valid JSON: {e}", param_hint="EVENT")

    schedule_signal = parse_signal(payload)

    async def run():
        async with open_runtime() as rt:
            return await handle_signal(schedule_signal, rt.discovery, rt.pruner)

    report = asyncio.run(run())
    _echo_report(f"{schedule_signal.kind.value.capitalize()} cycle complete:", report)


@main.command("init-db")
def init_db() -> None:
    """Initialize the database schema."""
    from twitch_notifier.storage.database import Database
    from twitch_notifier.subscriptions.repository import SubscriptionRepository

    async def run():
        db = Database()
        await db.connect()

        try:
            repo = SubscriptionRepository(db)
            await repo.create_table()
            click.echo("Database initialized successfully")
        finally:
            await db.close()

    asyncio.run(run())


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Print as JSON")
def status(as_json: bool) -> None:
    """Show last poll time, subscription count and today's deliveries."""
    from twitch_notifier.discovery import DeliveryCounterStore, StatusService
    from twitch_notifier.storage.database import Database, create_redis_client
    from twitch_notifier.subscriptions.repository import SubscriptionRepository

    async def run():
        db = Database()
        await db.connect()
        redis_client = create_redis_client()
        try:
            repo = SubscriptionRepository(db)
            service = StatusService(redis_client, repo, DeliveryCounterStore(redis_client))
            return await service.get_status()
        finally:
            await redis_client.aclose()
            await db.close()

    report = asyncio.run(run())
    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        _echo_report("Status:", report)


@main.command("validate-webhook")
@click.argument("url")
def validate_webhook(url: str) -> None:
    """Probe a Discord webhook URL for reachability."""
    from twitch_notifier.notifications import DiscordWebhookSink

    ok = asyncio.run(DiscordWebhookSink().validate(url))
    if ok:
        click.echo(click.style("Webhook is reachable", fg="green"))
    else:
        click.echo(click.style("Webhook is not reachable", fg="red"))
        sys.exit(1)


@main.command("search-categories")
@click.argument("query")
def search_categories(query: str) -> None:
    """Search Twitch categories by name."""
    from twitch_notifier.catalog.client import CatalogClient

    async def run():
        async with CatalogClient.from_settings() as catalog:
            return await catalog.search_categories(query)

    categories = asyncio.run(run())
    if not categories:
        click.echo("No categories found")
        return
    for category in categories:
        click.echo(f"  {category.category_id:>10}  {category.name}")


@main.command()
def health() -> None:
    """Check health of all dependencies."""
    import structlog
    logger = structlog.get_logger()

    async def check():
        results: dict[str, bool] = {}

        # Check Redis
        try:
            from twitch_notifier.storage.database import create_redis_client
            client = create_redis_client()
            try:
                results["redis"] = bool(await client.ping())
            finally:
                await client.aclose()
        except Exception as e:
            results["redis"] = False
            logger.error("Redis health check failed", error=str(e))

        # Check PostgreSQL
        try:
            from twitch_notifier.storage.database import Database
            db = Database()
            await db.connect()
            results["postgres"] = await db.health_check()
            await db.close()
        except Exception as e:
            results["postgres"] = False
            logger.error("Postgres health check failed", error=str(e))

        settings = get_settings()
        results["twitch_configured"] = settings.twitch_configured

        # Print results
        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)

        all_healthy = True
        for name, ok in results.items():
            icon = "✓" if ok else "✗"
            color = "green" if ok else "red"
            click.echo(click.style(f"  {icon} {name}: {ok}", fg=color))
            if name in ("redis", "postgres") and not ok:
                all_healthy = False

        click.echo("-" * 40)

        if all_healthy:
            click.echo(click.style("All core services healthy!", fg="green"))
            sys.exit(0)
        else:
            click.echo(click.style("Some services unhealthy!", fg="red"))
            sys.exit(1)

    asyncio.run(check())


if __name__ == "__main__":
    main()
