"""Event Bus Infrastructure Service.

In-process publish/subscribe for domain events such as ``booking.created`` or
``car.updated``. The cache layer subscribes to it to invalidate stale entries.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional

import structlog

from gatecache.domain.events import DomainEvent

logger = structlog.get_logger(__name__)

Subscriber = Callable[[DomainEvent], Awaitable[object]]


class DomainEventBus:
    """In-memory event bus.

    Events are kept for inspection and delivered to every subscriber
    concurrently. A failing subscriber is logged and never prevents delivery
    to the others or fails the publisher.
    """

    def __init__(self, history_size: int = 1000):
        """Initialize the bus with bounded in-memory history."""
        self._published_events: List[DomainEvent] = []
        self._history_size = history_size
        self._subscribers: List[Subscriber] = []

    async def publish(self, event: DomainEvent) -> None:
        """Publish a single domain event.

        Args:
            event: Domain event to publish
        """
        self._published_events.append(event)
        if len(self._published_events) > self._history_size:
            del self._published_events[0]

        if self._subscribers:
            await self._notify_subscribers(event)

        logger.info(
            "domain_event_published",
            event_name=event.name,
            correlation_id=event.correlation_id,
            occurred_at=event.occurred_at.isoformat(),
        )

    def add_subscriber(self, callback: Subscriber) -> None:
        """Add an async subscriber called with every published event."""
        self._subscribers.append(callback)
        logger.debug("event_subscriber_added", subscriber=type(callback).__name__)

    def get_published_events(self, name: Optional[str] = None) -> List[DomainEvent]:
        """Get published events, optionally filtered by event name."""
        if name is None:
            return list(self._published_events)
        return [e for e in self._published_events if e.name == name]

    def clear_published_events(self) -> None:
        self._published_events.clear()

    async def _notify_subscribers(self, event: DomainEvent) -> None:
        results = await asyncio.gather(
            *(subscriber(event) for subscriber in self._subscribers),
            return_exceptions=True,
        )
        for subscriber, result in zip(self._subscribers, results):
            if isinstance(result, Exception):
                logger.error(
                    "event_subscriber_failed",
                    event_name=event.name,
                    subscriber=type(subscriber).__name__,
                    error=str(result),
                )
