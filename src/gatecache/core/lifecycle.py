"""Application lifecycle management.

This module builds the shared components kept on ``app.state`` at startup and
releases them at shutdown.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from gatecache.adapters.api.middleware.rate_limit import RateLimitGuard
from gatecache.core.config.settings import Settings, settings
from gatecache.core.logging import logger
from gatecache.domain.caching.invalidation import CacheInvalidationSubscriber
from gatecache.domain.caching.services import CacheService
from gatecache.domain.caching.warmer import CacheWarmer
from gatecache.domain.interfaces import FleetDataSource, TokenVerifier
from gatecache.domain.rate_limiting.services import Clock, RateLimiter
from gatecache.domain.rate_limiting.violations import RateLimitViolationLog
from gatecache.infrastructure.data_sources.postgrest import PostgrestFleetDataSource
from gatecache.infrastructure.redis import StoreConnector
from gatecache.infrastructure.services.event_publisher import DomainEventBus
from gatecache.infrastructure.services.token_verifier import JWTTokenVerifier


def attach_components(
    app: FastAPI,
    config: Optional[Settings] = None,
    connector: Optional[StoreConnector] = None,
    data_source: Optional[FleetDataSource] = None,
    token_verifier: Optional[TokenVerifier] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    """Build every shared component and store it on ``app.state``.

    Collaborators not passed in are built from ``config``. The data source is
    only built when its settings are present; without it warming is disabled.
    """
    config = config or settings
    connector = connector or StoreConnector(config)
    if data_source is None and config.data_source_configured:
        data_source = PostgrestFleetDataSource(config)
    if token_verifier is None and config.jwt_configured:
        token_verifier = JWTTokenVerifier(config)

    limiter = RateLimiter(connector, clock=clock)
    cache = CacheService(connector)
    violations = RateLimitViolationLog(capacity=config.RATE_LIMIT_VIOLATION_CAPACITY)
    warmer = CacheWarmer(
        cache,
        data_source,
        max_concurrency=config.CACHE_WARMING_MAX_CONCURRENCY,
        batch_size=config.CACHE_WARMING_BATCH_SIZE,
    )
    event_bus = DomainEventBus()
    event_bus.add_subscriber(CacheInvalidationSubscriber(cache))

    app.state.settings = config
    app.state.store_connector = connector
    app.state.rate_limiter = limiter
    app.state.cache_service = cache
    app.state.violation_log = violations
    app.state.data_source = data_source
    app.state.cache_warmer = warmer
    app.state.event_bus = event_bus
    app.state.rate_limit_guard = RateLimitGuard(
        limiter,
        violations,
        token_verifier=token_verifier,
        environment=config.APP_ENV,
        enabled=config.RATE_LIMIT_ENABLED,
        multiplier_override=config.RATE_LIMIT_ENV_MULTIPLIER,
    )
    return app


async def release_components(app: FastAPI) -> None:
    """Cancel background work and close the store and data source clients."""
    warmer: CacheWarmer = app.state.cache_warmer
    if warmer.startup_task is not None and not warmer.startup_task.done():
        warmer.startup_task.cancel()
        try:
            await warmer.startup_task
        except asyncio.CancelledError:
            pass

    data_source = app.state.data_source
    if isinstance(data_source, PostgrestFleetDataSource):
        await data_source.aclose()

    await app.state.store_connector.disconnect()


def create_lifespan_manager(config: Optional[Settings] = None):
    """Create the application lifespan manager.

    Returns:
        AsyncContextManager: The lifespan manager for the FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager that handles startup and shutdown events.

        The store is connected eagerly so the first requests do not pay for
        it; an unreachable store is not fatal, limiting fails open until the
        reconnect loop recovers it.
        """
        current = config or settings
        attach_components(app, current)
        connector: StoreConnector = app.state.store_connector
        if connector.enabled and not await connector.connect():
            logger.warning("store_unavailable_on_startup")

        if current.ENABLE_CACHE_WARMING_ON_STARTUP:
            app.state.cache_warmer.warm_on_startup(
                delay_seconds=current.CACHE_WARMING_STARTUP_DELAY / 1000,
            )
        logger.info("application_startup", env=current.APP_ENV, version=current.VERSION)

        yield

        await release_components(app)
        logger.info("application_shutdown", env=current.APP_ENV)

    return lifespan
