"""Unit tests for `StoreConnector` and `RetryPolicy`."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from gatecache.core.config.redis import PLACEHOLDER_REDIS_TOKEN, PLACEHOLDER_REDIS_URL
from gatecache.infrastructure.redis import RetryPolicy, StoreConnector

FAST_RETRY = RetryPolicy(max_attempts=3, max_delay=0.01, multiplier=0.001)


@pytest.mark.parametrize(
    "url, token",
    [
        ("", "token"),
        ("rediss://store.test:6380", ""),
        (PLACEHOLDER_REDIS_URL, "token"),
        ("rediss://store.test:6380", PLACEHOLDER_REDIS_TOKEN),
        ("redis://store.test:6379", "token"),
    ],
)
@pytest.mark.asyncio
async def test_disabled_modes(settings_factory, url, token):
    factory = MagicMock()
    connector = StoreConnector(settings_factory(REDIS_URL=url, REDIS_TOKEN=token), client_factory=factory)

    assert not connector.enabled
    assert connector.get_connection() is None
    assert connector.get_connection() is None
    assert not await connector.connect()
    assert not await connector.health_check()
    factory.assert_not_called()


@pytest.mark.asyncio
async def test_client_is_built_once(connector, fake_redis):
    assert connector.get_connection() is fake_redis
    assert connector.get_connection() is fake_redis


@pytest.mark.asyncio
async def test_health_check(connector):
    assert await connector.health_check()
    assert connector.is_healthy()
    assert connector.status() == {
        "enabled": True,
        "connected": True,
        "healthy": True,
        "reconnect_attempts": 0,
    }


@pytest.mark.asyncio
async def test_failed_ping_marks_unhealthy(test_settings):
    client = MagicMock()
    client.ping = AsyncMock(side_effect=ConnectionError("refused"))
    connector = StoreConnector(test_settings, client_factory=lambda: client)

    assert not await connector.health_check()
    assert not connector.is_healthy()


@pytest.mark.asyncio
async def test_failed_build_schedules_supervised_reconnect(test_settings, fake_redis):
    factory = MagicMock(side_effect=[ConnectionError("refused"), fake_redis])
    connector = StoreConnector(test_settings, client_factory=factory, retry_policy=FAST_RETRY)

    assert connector.get_connection() is None
    assert connector.reconnect_task is not None

    assert await connector.reconnect_task
    assert connector.get_connection() is fake_redis
    assert connector.is_healthy()
    assert connector.attempts == 1


@pytest.mark.asyncio
async def test_reconnect_gives_up_after_max_attempts(test_settings):
    factory = MagicMock(side_effect=ConnectionError("refused"))
    connector = StoreConnector(test_settings, client_factory=factory, retry_policy=FAST_RETRY)

    assert not await connector.connect()
    assert connector.attempts == 3
    assert not connector.is_healthy()


@pytest.mark.asyncio
async def test_reconnect_retries_failed_ping(test_settings, fake_redis):
    broken = MagicMock()
    broken.ping = AsyncMock(side_effect=ConnectionError("refused"))
    broken.aclose = AsyncMock()
    factory = MagicMock(side_effect=[broken, fake_redis])
    connector = StoreConnector(test_settings, client_factory=factory, retry_policy=FAST_RETRY)

    assert await connector.connect()
    assert connector.attempts == 2
    assert connector.get_connection() is fake_redis
    broken.aclose.assert_awaited_once()


def unreachable_client():
    client = MagicMock()
    client.ping = AsyncMock(side_effect=ConnectionError("refused"))
    client.aclose = AsyncMock()
    return client


@pytest.mark.asyncio
async def test_clients_from_failed_attempts_are_closed(test_settings):
    built = []

    def factory():
        built.append(unreachable_client())
        return built[-1]

    connector = StoreConnector(test_settings, client_factory=factory, retry_policy=FAST_RETRY)

    assert not await connector.connect()
    assert len(built) == 3
    for client in built:
        client.aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_failing_close_does_not_abort_reconnect(test_settings, fake_redis):
    broken = unreachable_client()
    broken.aclose.side_effect = OSError("socket already gone")
    factory = MagicMock(side_effect=[broken, fake_redis])
    connector = StoreConnector(test_settings, client_factory=factory, retry_policy=FAST_RETRY)

    assert await connector.connect()
    assert connector.get_connection() is fake_redis


@pytest.mark.asyncio
async def test_reconnect_closes_unhealthy_client(test_settings, fake_redis):
    stale = unreachable_client()
    factory = MagicMock(side_effect=[stale, fake_redis])
    connector = StoreConnector(test_settings, client_factory=factory, retry_policy=FAST_RETRY)

    assert not await connector.health_check()
    assert connector.get_connection() is stale

    assert await connector.connect()
    assert connector.get_connection() is fake_redis
    assert connector.is_healthy()
    stale.aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_operation_timeout(settings_factory, fake_redis):
    connector = StoreConnector(settings_factory(REDIS_OPERATION_TIMEOUT=0.01), client_factory=lambda: fake_redis)

    with pytest.raises(asyncio.TimeoutError):
        await connector.call(asyncio.sleep(1))


@pytest.mark.asyncio
async def test_disconnect_and_reset(connector):
    await connector.health_check()

    await connector.disconnect()
    assert not connector.is_healthy()
    assert connector.status()["connected"] is False

    connector.reset_connection_state()
    assert connector.attempts == 0


def test_get_connection_without_loop_does_not_raise(test_settings):
    connector = StoreConnector(test_settings, client_factory=MagicMock(side_effect=ConnectionError("refused")))

    assert connector.get_connection() is None
    assert connector.reconnect_task is None


def test_retry_policy_validation():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
    with pytest.raises(ValueError):
        RetryPolicy(max_delay=0)


def test_retry_policy_from_settings(settings_factory):
    policy = RetryPolicy.from_settings(settings_factory(REDIS_MAX_RETRIES=5, REDIS_RETRY_MAX_DELAY=2))
    assert policy.max_attempts == 5
    assert policy.max_delay == 2
