"""
Shared Store Connection Module

This module owns the single Redis connection shared by the rate limiter and the
cache service. One `StoreConnector` is constructed per process (see
`gatecache.core.lifecycle`) and injected into every component that talks to the
store; no component reaches for a module-level client.

The connector never raises to its callers. Missing, placeholder or non-TLS
credentials put it in *disabled* mode, and a failed client construction
schedules a supervised reconnect loop driven by tenacity.

**Security Note**: Only ``rediss://`` URLs are accepted so that traffic to a
hosted store is always encrypted (OWASP A02:2021 - Cryptographic Failures). The
access token is passed as the connection password and is never logged
(OWASP A09:2021 - Security Logging and Monitoring Failures).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from redis.asyncio import Redis
from structlog import get_logger
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from gatecache.core.config.settings import Settings, settings as default_settings

logger = get_logger(__name__)

T = TypeVar("T")

ClientFactory = Callable[[], Redis]


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """
    Bounded exponential backoff used when the store client cannot be built.

    Delays grow as ``multiplier * 2 ** attempt`` seconds, capped at
    ``max_delay``, for at most ``max_attempts`` attempts.
    """
    max_attempts: int = 3
    max_delay: float = 10.0
    multiplier: float = 1.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.max_delay <= 0:
            raise ValueError("max_delay must be positive")

    def retrying(self) -> AsyncRetrying:
        """Build a fresh tenacity controller for one reconnect run."""
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.multiplier, max=self.max_delay),
            reraise=True,
        )

    @classmethod
    def from_settings(cls, config: Settings) -> RetryPolicy:
        return cls(
            max_attempts=config.REDIS_MAX_RETRIES,
            max_delay=config.REDIS_RETRY_MAX_DELAY,
        )


class StoreConnector:
    """
    Lazily builds, health-checks and recycles the shared Redis client.

    Args:
        config: Application settings; defaults to the process settings.
        client_factory: Callable returning a new client. Defaults to building
            one from ``REDIS_URL`` and ``REDIS_TOKEN``. Tests inject an
            in-memory client here.
        retry_policy: Backoff used by the reconnect loop.

    Attributes:
        reconnect_task: The running or last finished reconnect loop, if any.
            Callers may await it to observe recovery.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        client_factory: Optional[ClientFactory] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self._settings = config or default_settings
        self._client_factory = client_factory or self._default_client_factory
        self._retry_policy = retry_policy or RetryPolicy.from_settings(self._settings)
        self._operation_timeout = self._settings.REDIS_OPERATION_TIMEOUT
        self._client: Optional[Redis] = None
        self._healthy = False
        self._attempts = 0
        self._disabled_logged = False
        self.reconnect_task: Optional[asyncio.Task] = None

    @property
    def enabled(self) -> bool:
        """Whether usable store credentials are configured."""
        return self._settings.redis_configured

    @property
    def attempts(self) -> int:
        """Number of reconnect attempts made since the last reset."""
        return self._attempts

    def _default_client_factory(self) -> Redis:
        return Redis.from_url(
            self._settings.REDIS_URL,
            password=self._settings.REDIS_TOKEN.get_secret_value(),
            decode_responses=True,
            socket_timeout=self._settings.REDIS_SOCKET_TIMEOUT,
            socket_connect_timeout=self._settings.REDIS_SOCKET_TIMEOUT,
        )

    def get_connection(self) -> Optional[Redis]:
        """
        Return the shared client, building it on first use.

        Returns ``None`` when the store is disabled or the client could not be
        built; in the latter case a reconnect loop is scheduled on the running
        event loop. Never raises.
        """
        if self._client is not None:
            return self._client

        if not self.enabled:
            if not self._disabled_logged:
                logger.warning(
                    "store_disabled",
                    reason="REDIS_URL/REDIS_TOKEN missing, placeholder or not rediss://",
                )
                self._disabled_logged = True
            return None

        try:
            self._client = self._client_factory()
            self._healthy = True
            logger.info("store_client_created")
            return self._client
        except Exception as e:
            logger.error("store_client_creation_failed", error=str(e))
            self._healthy = False
            self._schedule_reconnect()
            return None

    def _schedule_reconnect(self) -> None:
        if self.reconnect_task is not None and not self.reconnect_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("store_reconnect_not_scheduled", reason="no running event loop")
            return
        self.reconnect_task = loop.create_task(self.connect())

    async def connect(self) -> bool:
        """
        Build the client under the retry policy and verify it with ``PING``.

        Returns:
            bool: True once a healthy client is installed, False when the store
            is disabled or every attempt failed.
        """
        if not self.enabled:
            return False
        if self._client is not None and self._healthy:
            return True

        client: Optional[Redis] = None
        try:
            async for attempt in self._retry_policy.retrying():
                with attempt:
                    self._attempts += 1
                    logger.info("store_connect_attempt", attempt=self._attempts)
                    client = self._client_factory()
                    try:
                        await asyncio.wait_for(client.ping(), timeout=self._operation_timeout)
                    except Exception:
                        await self._close_quietly(client)
                        raise
        except Exception as e:
            logger.error(
                "store_reconnect_exhausted",
                attempts=self._attempts,
                error=str(e),
            )
            self._healthy = False
            return False

        stale, self._client = self._client, client
        self._healthy = True
        logger.info("store_connected", attempts=self._attempts)
        if stale is not None and stale is not client:
            await self._close_quietly(stale)
        return True

    @staticmethod
    async def _close_quietly(client: Redis) -> None:
        """Close a client being discarded; a failing close is only logged."""
        try:
            await client.aclose()
        except Exception as e:
            logger.warning("store_client_close_failed", error=str(e))

    async def call(self, awaitable: Awaitable[T]) -> T:
        """Await a store operation under the per-operation timeout."""
        return await asyncio.wait_for(awaitable, timeout=self._operation_timeout)

    async def health_check(self) -> bool:
        """Ping the store and record the outcome as the cached health flag."""
        client = self.get_connection()
        if client is None:
            self._healthy = False
            return False
        try:
            await self.call(client.ping())
        except Exception as e:
            logger.warning("store_health_check_failed", error=str(e))
            self._healthy = False
            return False
        self._healthy = True
        return True

    def is_healthy(self) -> bool:
        """Last known health status; no I/O."""
        return self._client is not None and self._healthy

    async def disconnect(self) -> None:
        """Close the client if one exists and mark the store unhealthy."""
        client, self._client = self._client, None
        self._healthy = False
        if client is None:
            return
        try:
            await client.aclose()
            logger.info("store_disconnected")
        except Exception as e:
            logger.warning("store_disconnect_failed", error=str(e))

    def reset_connection_state(self) -> None:
        """Forget the client, health flag and attempt counter without I/O."""
        if self.reconnect_task is not None and not self.reconnect_task.done():
            self.reconnect_task.cancel()
        self.reconnect_task = None
        self._client = None
        self._healthy = False
        self._attempts = 0
        self._disabled_logged = False

    def status(self) -> dict[str, Any]:
        """Summary used by the health endpoint and the CLI."""
        return {
            "enabled": self.enabled,
            "connected": self._client is not None,
            "healthy": self.is_healthy(),
            "reconnect_attempts": self._attempts,
        }
