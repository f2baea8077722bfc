"""Sliding-window rate limiter backed by the shared store.

Each identifier owns a sorted set keyed ``namespace:identifier`` whose members
are request ids scored by their arrival time in epoch milliseconds. Every check
prunes expired members, records the new request, counts and refreshes the set's
TTL in a single MULTI/EXEC transaction, so concurrent checks for one identifier
can never lose updates.

The limiter is a protective layer: whenever the store is disabled, slow or
failing, checks fail open.
"""

from __future__ import annotations

import math
import secrets
import time
from typing import Callable, Optional

from structlog import get_logger

from gatecache.core.metrics import MetricsCollector, metrics_collector
from gatecache.domain.rate_limiting.entities import RateLimitViolation
from gatecache.domain.rate_limiting.value_objects import (
    RateLimitConfig,
    RateLimitResult,
    RateLimitStatus,
    from_epoch_ms,
)
from gatecache.infrastructure.redis import StoreConnector

logger = get_logger(__name__)

Clock = Callable[[], int]


def system_clock() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


class RateLimiter:
    """Sliding-window rate limiter.

    Args:
        connector: Shared store connector.
        clock: Callable returning epoch milliseconds; injectable for tests.
        metrics: Collector receiving allowed/denied/fail-open counts.
    """

    def __init__(
        self,
        connector: StoreConnector,
        clock: Optional[Clock] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self._connector = connector
        self._clock = clock or system_clock
        self._metrics = metrics or metrics_collector

    @staticmethod
    def _member_id(now_ms: int) -> str:
        return f"{now_ms}-{secrets.token_hex(8)}"

    def is_available(self) -> bool:
        """True when the store connector hands out a client."""
        return self._connector.get_connection() is not None

    async def check_limit(self, identifier: str, config: RateLimitConfig) -> RateLimitResult:
        """Record one request for ``identifier`` and decide whether it may proceed.

        Args:
            identifier: Client identity (IP address or user id).
            config: Policy to enforce.

        Returns:
            RateLimitResult: Decision with remaining quota, reset time and, on
            denial, a retry hint between one second and one window.
        """
        now_ms = self._clock()
        client = self._connector.get_connection()
        if client is None:
            logger.debug("rate_limit_store_unavailable", namespace=config.key_namespace)
            self._metrics.record_rate_limit_metric(config.key_namespace, "fail_open")
            return RateLimitResult.fail_open(config, now_ms)

        key = config.key_for(identifier)
        window_start = now_ms - config.window_ms

        try:
            async with client.pipeline(transaction=True) as pipe:
                # Exclusive bound: an entry exactly window_ms old is still in window.
                await pipe.zremrangebyscore(key, "-inf", f"({window_start}")
                await pipe.zadd(key, {self._member_id(now_ms): now_ms})
                await pipe.zcard(key)
                await pipe.expire(key, config.window_seconds)
                results = await self._connector.call(pipe.execute())
            count = int(results[2])
        except Exception as e:
            logger.error(
                "rate_limit_check_failed",
                namespace=config.key_namespace,
                error=str(e),
            )
            self._metrics.record_store_error("check_limit")
            self._metrics.record_rate_limit_metric(config.key_namespace, "fail_open")
            return RateLimitResult.fail_open(config, now_ms)

        allowed = count <= config.max_requests
        remaining = max(0, config.max_requests - count)
        reset_at = from_epoch_ms(now_ms + config.window_ms)

        if allowed:
            self._metrics.record_rate_limit_metric(config.key_namespace, "allowed")
            return RateLimitResult(
                allowed=True,
                limit=config.max_requests,
                remaining=remaining,
                reset_at=reset_at,
            )

        retry_after = await self._retry_after(client, key, config, now_ms)
        result = RateLimitResult(
            allowed=False,
            limit=config.max_requests,
            remaining=remaining,
            reset_at=reset_at,
            retry_after_seconds=retry_after,
        )
        self._metrics.record_rate_limit_metric(config.key_namespace, "denied")
        logger.info(
            "rate_limit_denied",
            namespace=config.key_namespace,
            count=count,
            limit=config.max_requests,
            retry_after=retry_after,
        )

        if config.on_violation is not None:
            violation = RateLimitViolation(
                identifier=identifier,
                endpoint=config.key_namespace,
                limit=config.max_requests,
                window_ms=config.window_ms,
                headers=result.to_http_headers(),
            )
            try:
                await config.on_violation.notify(violation)
            except Exception as e:
                logger.error("violation_observer_failed", namespace=config.key_namespace, error=str(e))

        return result

    async def _retry_after(self, client, key: str, config: RateLimitConfig, now_ms: int) -> int:
        """Seconds until the oldest entry leaves the window, within [1, window]."""
        window_seconds = config.window_seconds
        try:
            oldest = await self._connector.call(client.zrange(key, 0, 0, withscores=True))
        except Exception as e:
            logger.warning("rate_limit_oldest_lookup_failed", namespace=config.key_namespace, error=str(e))
            return window_seconds
        if not oldest:
            return window_seconds
        oldest_ms = float(oldest[0][1])
        retry_after = math.ceil((oldest_ms + config.window_ms - now_ms) / 1000)
        return min(max(retry_after, 1), window_seconds)

    async def reset(self, identifier: str, config: RateLimitConfig) -> bool:
        """Forget every recorded request for ``identifier``.

        Returns:
            bool: False when the store is disabled or the delete failed.
        """
        client = self._connector.get_connection()
        if client is None:
            return False
        try:
            await self._connector.call(client.delete(config.key_for(identifier)))
        except Exception as e:
            logger.error("rate_limit_reset_failed", namespace=config.key_namespace, error=str(e))
            self._metrics.record_store_error("reset")
            return False
        return True

    async def get_remaining(self, identifier: str, config: RateLimitConfig) -> int:
        """Requests left in the current window without recording a new one."""
        client = self._connector.get_connection()
        if client is None:
            return config.max_requests

        key = config.key_for(identifier)
        window_start = self._clock() - config.window_ms
        try:
            async with client.pipeline(transaction=True) as pipe:
                await pipe.zremrangebyscore(key, "-inf", f"({window_start}")
                await pipe.zcard(key)
                results = await self._connector.call(pipe.execute())
            count = int(results[1])
        except Exception as e:
            logger.error("rate_limit_remaining_failed", namespace=config.key_namespace, error=str(e))
            self._metrics.record_store_error("get_remaining")
            return config.max_requests
        return max(0, config.max_requests - count)

    async def get_status(self, identifier: str, config: RateLimitConfig) -> RateLimitStatus:
        remaining = await self.get_remaining(identifier, config)
        return RateLimitStatus(remaining=remaining, limit=config.max_requests)
