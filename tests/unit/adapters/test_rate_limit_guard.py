"""Unit tests for the request-level `RateLimitGuard`."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.responses import JSONResponse

from gatecache.adapters.api.middleware.rate_limit import (
    RateLimitGuard,
    RateLimitOptions,
    get_client_ip,
    get_user_id_from_request,
)
from gatecache.core.exceptions import IdentityRequiredError, RateLimitExceededError
from gatecache.domain.rate_limiting.value_objects import RateLimitConfig
from gatecache.domain.rate_limiting.violations import RateLimitViolationLog
from gatecache.infrastructure.services.token_verifier import JWTTokenVerifier

WINDOW_MS = 60_000


@pytest.fixture
def violations():
    return RateLimitViolationLog(capacity=100)


@pytest.fixture
def guard(limiter, violations, test_settings):
    return RateLimitGuard(limiter, violations, token_verifier=JWTTokenVerifier(test_settings), environment="test")


def bearer(token):
    return {"Authorization": f"Bearer {token}", "X-Forwarded-For": "203.0.113.7"}


@pytest.mark.parametrize(
    "headers, expected",
    [
        ({"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}, "203.0.113.7"),
        ({"X-Real-IP": " 198.51.100.2 "}, "198.51.100.2"),
        ({"X-Forwarded-For": "203.0.113.7", "X-Real-IP": "198.51.100.2"}, "203.0.113.7"),
        ({}, "unknown"),
    ],
)
def test_get_client_ip(request_factory, headers, expected):
    assert get_client_ip(request_factory(headers=headers)) == expected


@pytest.mark.asyncio
async def test_user_id_resolution(request_factory, token_factory, test_settings):
    verifier = JWTTokenVerifier(test_settings)

    assert await get_user_id_from_request(request_factory(), verifier) is None
    assert await get_user_id_from_request(request_factory(headers={"Authorization": "Basic abc"}), verifier) is None
    assert await get_user_id_from_request(request_factory(headers=bearer("garbage")), verifier) is None
    assert await get_user_id_from_request(request_factory(headers=bearer(token_factory("u-1"))), None) is None
    assert await get_user_id_from_request(request_factory(headers=bearer(token_factory("u-1"))), verifier) == "u-1"


@pytest.mark.asyncio
async def test_allowed_request_gets_headers(guard, request_factory):
    headers = await guard.enforce(request_factory(headers={"X-Forwarded-For": "203.0.113.7"}), guard.public())

    assert headers["X-RateLimit-Limit"] == "60"
    assert headers["X-RateLimit-Remaining"] == "59"
    assert headers["X-RateLimit-Reset"].endswith("Z")
    assert "Retry-After" not in headers


@pytest.mark.asyncio
async def test_denied_request_raises_and_is_logged(guard, violations, request_factory):
    options = RateLimitOptions(config=RateLimitConfig(window_ms=WINDOW_MS, max_requests=2, key_namespace="rl:t"))
    request = request_factory(path="/api/bookings", headers={"X-Forwarded-For": "203.0.113.7"})

    await guard.enforce(request, options)
    await guard.enforce(request, options)
    with pytest.raises(RateLimitExceededError) as exc_info:
        await guard.enforce(request, options)

    error = exc_info.value
    assert error.headers["X-RateLimit-Remaining"] == "0"
    assert 1 <= int(error.headers["Retry-After"]) <= 60
    assert len(violations) == 1
    recorded = violations.all()[0]
    assert recorded.identifier == "203.0.113.7"
    assert recorded.endpoint == "/api/bookings"


@pytest.mark.asyncio
async def test_rate_limited_observer_is_notified(guard, request_factory):
    observer = MagicMock()
    observer.notify = AsyncMock()
    options = RateLimitOptions(
        config=RateLimitConfig(window_ms=WINDOW_MS, max_requests=1, key_namespace="rl:t"),
        on_rate_limited=observer,
    )
    request = request_factory()

    await guard.enforce(request, options)
    with pytest.raises(RateLimitExceededError):
        await guard.enforce(request, options)

    observer.notify.assert_awaited_once()


@pytest.mark.asyncio
async def test_disabled_guard_passes_through(limiter, violations, request_factory):
    guard = RateLimitGuard(limiter, violations, enabled=False)
    options = RateLimitOptions(config=RateLimitConfig(window_ms=WINDOW_MS, max_requests=1, key_namespace="rl:t"))

    for _ in range(5):
        assert await guard.enforce(request_factory(), options) == {}


@pytest.mark.asyncio
async def test_dual_limit_checks_ip_then_user(guard, violations, request_factory, token_factory):
    ip_config = RateLimitConfig(window_ms=WINDOW_MS, max_requests=10, key_namespace="rate:pay", dual_limit_enabled=True)
    user_config = RateLimitConfig(window_ms=WINDOW_MS, max_requests=5, key_namespace="rate:pay")
    options = RateLimitOptions(config=ip_config, dual_limit_extractor=guard.user_id, user_config=user_config)
    anonymous = request_factory(headers={"X-Forwarded-For": "203.0.113.7"})
    signed_in = request_factory(headers=bearer(token_factory("user-1")))

    for _ in range(3):
        await guard.enforce(anonymous, options)
    for _ in range(5):
        headers = await guard.enforce(signed_in, options)
    assert headers["X-RateLimit-Limit"] == "5"
    assert headers["X-RateLimit-Remaining"] == "0"

    with pytest.raises(RateLimitExceededError):
        await guard.enforce(signed_in, options)
    assert violations.all()[-1].identifier == "user-1"

    other_user = request_factory(headers=bearer(token_factory("user-2")))
    await guard.enforce(other_user, options)

    with pytest.raises(RateLimitExceededError):
        await guard.enforce(other_user, options)
    assert violations.all()[-1].identifier == "203.0.113.7"


@pytest.mark.asyncio
async def test_payment_preset_limits_per_ip_and_user(guard, request_factory, token_factory, fake_redis):
    await guard.enforce(request_factory(headers=bearer(token_factory("user-1"))), guard.payment())

    assert await fake_redis.zcard("rate:payment:ip:203.0.113.7") == 1
    assert await fake_redis.zcard("rate:payment:user:user-1") == 1


@pytest.mark.asyncio
async def test_booking_preset_prefers_user_id(guard, request_factory, fake_redis):
    await guard.enforce(request_factory(headers={"X-Forwarded-For": "203.0.113.7"}), guard.booking("user-9"))
    await guard.enforce(request_factory(headers={"X-Forwarded-For": "203.0.113.7"}), guard.booking(None))

    assert await fake_redis.zcard("rate:booking:user-9") == 1
    assert await fake_redis.zcard("rate:booking:203.0.113.7") == 1


@pytest.mark.asyncio
async def test_admin_preset_requires_identity(guard, request_factory, token_factory, fake_redis):
    with pytest.raises(IdentityRequiredError):
        await guard.enforce(request_factory(), guard.admin())

    headers = await guard.enforce(request_factory(headers=bearer(token_factory("admin-1"))), guard.admin())
    assert headers["X-RateLimit-Limit"] == "300"
    assert await fake_redis.zcard("rate:admin:admin-1") == 1


@pytest.mark.asyncio
async def test_dynamic_preset(guard, request_factory, token_factory):
    anonymous = await guard.enforce(request_factory(), guard.dynamic)
    signed_in = await guard.enforce(request_factory(headers=bearer(token_factory("u-1"))), guard.dynamic)

    assert anonymous["X-RateLimit-Limit"] == "60"
    assert signed_in["X-RateLimit-Limit"] == "120"


@pytest.mark.asyncio
async def test_by_path_applies_endpoint_policy(guard, request_factory, token_factory, fake_redis):
    contact = request_factory(path="/api/email/contact", headers={"X-Forwarded-For": "203.0.113.7"})
    analytics = request_factory(path="/api/admin/analytics", headers=bearer(token_factory("admin-1")))
    fallback = request_factory(path="/api/unknown", headers={"X-Forwarded-For": "203.0.113.7"})

    assert (await guard.enforce(contact, guard.by_path))["X-RateLimit-Limit"] == "5"
    assert (await guard.enforce(analytics, guard.by_path))["X-RateLimit-Limit"] == "10"
    assert (await guard.enforce(fallback, guard.by_path))["X-RateLimit-Limit"] == "60"
    assert await fake_redis.zcard("rl:special:contact:203.0.113.7") == 1
    assert await fake_redis.zcard("rl:admin:reports:admin-1") == 1


@pytest.mark.asyncio
async def test_by_path_denies_past_endpoint_quota(guard, violations, request_factory):
    def verify_email():
        return request_factory(path="/api/email/booking", headers={"X-Forwarded-For": "198.51.100.2"})

    for _ in range(3):
        await guard.enforce(verify_email(), guard.by_path)

    with pytest.raises(RateLimitExceededError):
        await guard.enforce(verify_email(), guard.by_path)
    assert violations.all()[-1].endpoint == "/api/email/booking"


@pytest.mark.asyncio
async def test_environment_scales_presets(limiter, violations, request_factory):
    guard = RateLimitGuard(limiter, violations, environment="development")
    headers = await guard.enforce(request_factory(), guard.public())
    assert headers["X-RateLimit-Limit"] == "600"


@pytest.mark.asyncio
async def test_with_rate_limit_wraps_handler(guard, request_factory):
    async def handler(request):
        return JSONResponse({"ok": True})

    wrapped = guard.with_rate_limit(handler, guard.webhook())
    response = await wrapped(request_factory(headers={"X-Forwarded-For": "10.0.0.1"}))

    assert response.status_code == 200
    assert response.headers["X-RateLimit-Limit"] == "100"
    assert response.headers["X-RateLimit-Remaining"] == "99"
