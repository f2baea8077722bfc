"""Cache service over the shared store.

Values are JSON encoded on write and decoded on read. Every operation catches
store errors and timeouts on its own and returns a safe default (``None``,
``False``, ``0`` or ``-1``), so callers never need to tell a miss from an
outage to stay correct.
"""

from __future__ import annotations

import json
from typing import Any, Awaitable, Callable, Iterable, List, Mapping, Optional, TypeVar

from structlog import get_logger

from gatecache.core.metrics import MetricsCollector, metrics_collector, record_metric
from gatecache.domain.caching.value_objects import CACHE_CONFIGS, CacheConfig
from gatecache.infrastructure.redis import StoreConnector

logger = get_logger(__name__)

T = TypeVar("T")

SCAN_COUNT = 100


class CacheService:
    """TTL and pattern based cache.

    Args:
        connector: Shared store connector.
        serializer: Encodes values to strings; defaults to ``json.dumps``.
        deserializer: Decodes stored strings; defaults to ``json.loads``.
        configs: Cache domains consulted by `invalidate_by_event`.
        metrics: Collector receiving store error counts.
    """

    def __init__(
        self,
        connector: StoreConnector,
        serializer: Optional[Callable[[Any], str]] = None,
        deserializer: Optional[Callable[[str], Any]] = None,
        configs: Optional[Mapping[str, CacheConfig]] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self._connector = connector
        self._serialize = serializer or json.dumps
        self._deserialize = deserializer or json.loads
        self._configs = configs if configs is not None else CACHE_CONFIGS
        self._metrics = metrics or metrics_collector

    def is_available(self) -> bool:
        return self._connector.get_connection() is not None

    @staticmethod
    def generate_key(prefix: str, *parts: Any) -> str:
        """Compose ``prefix`` and ``parts`` joined by ``:``. No I/O."""
        return f"{prefix}{':'.join(str(part) for part in parts)}"

    def _store_failed(self, operation: str, error: Exception, **context) -> None:
        logger.error("cache_operation_failed", operation=operation, error=str(error), **context)
        self._metrics.record_store_error(f"cache_{operation}")

    @record_metric("cache")
    async def get(self, key: str) -> Optional[Any]:
        client = self._connector.get_connection()
        if client is None:
            return None
        try:
            data = await self._connector.call(client.get(key))
        except Exception as e:
            self._store_failed("get", e, key=key)
            return None
        if data is None:
            return None
        try:
            return self._deserialize(data)
        except (TypeError, ValueError) as e:
            logger.warning("cache_value_undecodable", key=key, error=str(e))
            return None

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        """Store ``value``; a positive TTL is applied atomically with the write."""
        client = self._connector.get_connection()
        if client is None:
            return False
        try:
            payload = self._serialize(value)
        except (TypeError, ValueError) as e:
            logger.warning("cache_value_unserializable", key=key, error=str(e))
            return False
        try:
            if ttl_seconds and ttl_seconds > 0:
                await self._connector.call(client.set(key, payload, ex=ttl_seconds))
            else:
                await self._connector.call(client.set(key, payload))
        except Exception as e:
            self._store_failed("set", e, key=key)
            return False
        return True

    async def delete(self, key: str) -> bool:
        """True only when a key was actually removed."""
        client = self._connector.get_connection()
        if client is None:
            return False
        try:
            removed = await self._connector.call(client.delete(key))
        except Exception as e:
            self._store_failed("delete", e, key=key)
            return False
        return removed > 0

    async def _scan(self, client, pattern: str) -> List[str]:
        keys: dict[str, None] = {}
        cursor = 0
        while True:
            cursor, batch = await self._connector.call(
                client.scan(cursor, match=pattern, count=SCAN_COUNT)
            )
            keys.update(dict.fromkeys(batch))
            if int(cursor) == 0:
                break
        return list(keys)

    async def invalidate(self, pattern: str) -> int:
        """Delete every key matching the glob ``pattern``.

        All scan rounds complete before a single batched delete.

        Returns:
            int: Number of keys removed.
        """
        client = self._connector.get_connection()
        if client is None:
            return 0
        try:
            keys = await self._scan(client, pattern)
            if not keys:
                return 0
            deleted = await self._connector.call(client.delete(*keys))
        except Exception as e:
            self._store_failed("invalidate", e, pattern=pattern)
            return 0
        logger.info("cache_invalidated", pattern=pattern, deleted=deleted)
        return int(deleted)

    async def invalidate_by_tags(self, tags: Iterable[str]) -> int:
        total = 0
        for tag in tags:
            total += await self.invalidate(f"*:{tag}:*")
        return total

    async def invalidate_by_event(self, event_name: str) -> int:
        """Invalidate every cache domain that lists ``event_name``."""
        total = 0
        for name, config in self._configs.items():
            if config.invalidated_by(event_name):
                deleted = await self.invalidate(config.pattern)
                logger.debug("cache_domain_invalidated", domain=name, event_name=event_name, deleted=deleted)
                total += deleted
        return total

    async def exists(self, key: str) -> bool:
        client = self._connector.get_connection()
        if client is None:
            return False
        try:
            return await self._connector.call(client.exists(key)) == 1
        except Exception as e:
            self._store_failed("exists", e, key=key)
            return False

    async def ttl(self, key: str) -> int:
        """Remaining TTL in seconds as reported by the store; -1 on failure."""
        client = self._connector.get_connection()
        if client is None:
            return -1
        try:
            return int(await self._connector.call(client.ttl(key)))
        except Exception as e:
            self._store_failed("ttl", e, key=key)
            return -1

    async def flush(self) -> bool:
        """Drop every key of the current database, rate-limit windows included."""
        client = self._connector.get_connection()
        if client is None:
            return False
        try:
            await self._connector.call(client.flushdb())
        except Exception as e:
            self._store_failed("flush", e)
            return False
        logger.warning("cache_flushed")
        return True

    async def get_cached_data(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[T]],
        ttl_seconds: int = 300,
    ) -> T:
        """Read-through helper: serve ``key`` from cache or fetch and store it.

        Errors raised by ``fetcher`` propagate; cache failures do not.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached
        fresh = await fetcher()
        await self.set(key, fresh, ttl_seconds)
        return fresh
