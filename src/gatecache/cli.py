"""Operational commands: warm the cache, watch rate-limit quotas, probe the store.

Usage:
    gatecache warm --popular-only --limit 20
    gatecache warm --availability-only --days 14
    gatecache monitor --interval 2 --iterations 10
    gatecache health
    gatecache serve --port 8080
"""

import asyncio
from dataclasses import dataclass
from typing import List, Optional, Tuple

import typer
import uvicorn

from gatecache.core.config.settings import Settings, settings
from gatecache.core.logging import configure_logging
from gatecache.domain.caching.services import CacheService
from gatecache.domain.caching.warmer import CacheWarmer, WarmingOptions, WarmingStatus
from gatecache.domain.interfaces import FleetDataSource
from gatecache.domain.rate_limiting.policies import RATE_LIMIT_CONFIGS
from gatecache.domain.rate_limiting.services import RateLimiter
from gatecache.domain.rate_limiting.value_objects import RateLimitConfig
from gatecache.infrastructure.data_sources.postgrest import PostgrestFleetDataSource
from gatecache.infrastructure.redis import StoreConnector

app = typer.Typer(help="Rate limiting and cache operations", no_args_is_help=True)

MAX_POPULAR_CARS = 50
MAX_AVAILABILITY_DAYS = 30
HIGH_USAGE_PERCENT = 80
GAUGE_WIDTH = 20

# Label, policy and the identifier watched when none is given.
MONITORED_POLICIES: List[Tuple[str, RateLimitConfig, str]] = [
    ("Payment (IP)", RATE_LIMIT_CONFIGS["payment"].scoped("ip"), "192.168.1.100"),
    ("Payment (user)", RATE_LIMIT_CONFIGS["payment"].scoped("user"), "user-123"),
    ("Upload", RATE_LIMIT_CONFIGS["upload"], "user-456"),
    ("Webhook", RATE_LIMIT_CONFIGS["webhook"], "10.0.0.1"),
    ("Admin", RATE_LIMIT_CONFIGS["admin"], "admin-789"),
]


@dataclass
class Runtime:
    """Components a command works with, built outside any web application."""

    connector: StoreConnector
    limiter: RateLimiter
    warmer: CacheWarmer
    data_source: Optional[FleetDataSource] = None

    async def aclose(self) -> None:
        if isinstance(self.data_source, PostgrestFleetDataSource):
            await self.data_source.aclose()
        await self.connector.disconnect()


def build_runtime(config: Optional[Settings] = None) -> Runtime:
    config = config or settings
    connector = StoreConnector(config)
    data_source = PostgrestFleetDataSource(config) if config.data_source_configured else None
    warmer = CacheWarmer(
        CacheService(connector),
        data_source,
        max_concurrency=config.CACHE_WARMING_MAX_CONCURRENCY,
        batch_size=config.CACHE_WARMING_BATCH_SIZE,
    )
    return Runtime(connector=connector, limiter=RateLimiter(connector), warmer=warmer, data_source=data_source)


def gauge(percent_used: int, width: int = GAUGE_WIDTH) -> str:
    filled = min(width, max(0, round(percent_used / 100 * width)))
    return "█" * filled + "░" * (width - filled)


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
) -> None:
    configure_logging(log_level=log_level)


@app.command()
def warm(
    popular_only: bool = typer.Option(False, "--popular-only", help="Only warm the fleet listing and car details"),
    availability_only: bool = typer.Option(False, "--availability-only", help="Only warm availability"),
    limit: int = typer.Option(10, "--limit", min=1, help=f"Popular cars to warm (capped at {MAX_POPULAR_CARS})"),
    days: int = typer.Option(7, "--days", min=1, help=f"Days of availability (capped at {MAX_AVAILABILITY_DAYS})"),
) -> None:
    """Run one cache warming pass.

    Exits non-zero only when the run failed entirely; partial runs succeed.

    Example:
        gatecache warm --popular-only --limit 20
    """
    if popular_only and availability_only:
        typer.echo("--popular-only and --availability-only are mutually exclusive", err=True)
        raise typer.Exit(2)

    options = WarmingOptions(
        warm_popular_cars=not availability_only,
        warm_upcoming_availability=not popular_only,
        popular_cars_limit=min(limit, MAX_POPULAR_CARS),
        availability_days=min(days, MAX_AVAILABILITY_DAYS),
    )
    typer.echo("🔥 Starting cache warming...")
    metrics = asyncio.run(_warm(options))

    typer.echo(f"Status: {metrics.status.value}")
    typer.echo(f"Keys warmed: {metrics.keys_warmed}")
    typer.echo(f"Duration: {round(metrics.duration_ms)}ms")
    for error in metrics.errors:
        typer.echo(f"  ❌ {error}", err=True)

    if metrics.status == WarmingStatus.FAILED:
        raise typer.Exit(1)
    typer.echo("✅ Cache warming finished")


async def _warm(options: WarmingOptions):
    runtime = build_runtime()
    try:
        return await runtime.warmer.warm_cache(options)
    finally:
        await runtime.aclose()


@app.command()
def monitor(
    interval: float = typer.Option(1.0, "--interval", min=0.0, help="Seconds between refreshes"),
    iterations: int = typer.Option(0, "--iterations", min=0, help="Stop after N refreshes (0 runs until interrupted)"),
    identifier: Optional[str] = typer.Option(None, "--identifier", help="Watch this identifier on every policy"),
) -> None:
    """Show remaining quota per rate-limit policy.

    Reading a quota never consumes it. Exits 1 when the store is unavailable.

    Example:
        gatecache monitor --identifier 203.0.113.7 --iterations 5
    """
    try:
        available = asyncio.run(_monitor(interval, iterations, identifier))
    except KeyboardInterrupt:
        typer.echo("\nShutting down rate limit monitor...")
        return
    if not available:
        typer.echo("Store is not available. Rate limit monitoring requires the store.", err=True)
        raise typer.Exit(1)


async def _monitor(interval: float, iterations: int, identifier: Optional[str]) -> bool:
    runtime = build_runtime()
    try:
        if not await runtime.connector.health_check():
            return False
        count = 0
        while True:
            await _print_quotas(runtime.limiter, identifier)
            count += 1
            if iterations and count >= iterations:
                return True
            await asyncio.sleep(interval)
    finally:
        await runtime.aclose()


async def _print_quotas(limiter: RateLimiter, identifier: Optional[str]) -> None:
    typer.echo("=== Rate Limit Monitor ===")
    for label, config, default_identifier in MONITORED_POLICIES:
        watched = identifier or default_identifier
        status = await limiter.get_status(watched, config)
        typer.echo(label)
        typer.echo(f"  Identifier: {watched}")
        typer.echo(f"  Status: {status.remaining}/{status.limit} remaining")
        typer.echo(f"  Usage:  [{gauge(status.percent_used)}] {status.percent_used}%")
        if status.percent_used > HIGH_USAGE_PERCENT:
            typer.echo("  ⚠️  WARNING: High usage detected!")
        typer.echo("")


@app.command()
def health() -> None:
    """Ping the store; exits 1 when it is disabled or unreachable."""
    healthy, status = asyncio.run(_health())
    for key, value in status.items():
        typer.echo(f"{key}: {value}")
    if not healthy:
        typer.echo("❌ Store is unhealthy", err=True)
        raise typer.Exit(1)
    typer.echo("✅ Store is healthy")


async def _health():
    runtime = build_runtime()
    try:
        healthy = await runtime.connector.health_check()
        return healthy, runtime.connector.status()
    finally:
        await runtime.aclose()


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Defaults to API_HOST"),
    port: Optional[int] = typer.Option(None, "--port", help="Defaults to API_PORT"),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes"),
) -> None:
    """Run the HTTP API."""
    uvicorn.run(
        "gatecache.main:app",
        host=host or settings.API_HOST,
        port=port or settings.API_PORT,
        reload=reload,
        log_config=None,
    )


if __name__ == "__main__":
    app()
