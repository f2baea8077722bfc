"""Event-driven cache invalidation."""

from __future__ import annotations

from structlog import get_logger

from gatecache.domain.caching.services import CacheService
from gatecache.domain.events import DomainEvent

logger = get_logger(__name__)


class CacheInvalidationSubscriber:
    """Event bus subscriber that drops cache domains affected by an event.

    Register an instance with `DomainEventBus.add_subscriber`; it is awaited
    with every published event.
    """

    def __init__(self, cache: CacheService):
        self._cache = cache

    async def __call__(self, event: DomainEvent) -> int:
        deleted = await self._cache.invalidate_by_event(event.name)
        logger.info(
            "cache_invalidated_by_event",
            event_name=event.name,
            deleted=deleted,
            correlation_id=event.correlation_id,
        )
        return deleted
