"""
Checkout traffic is limited twice: per client address and, for signed-in
shoppers, per account. A shared office address can hold several accounts,
each with its own allowance, until the address itself is exhausted.
"""

import pytest
from fastapi import APIRouter, Depends

from gatecache.adapters.api.middleware.rate_limit import RateLimitGuard, rate_limited
from gatecache.domain.rate_limiting.value_objects import RateLimitConfig

pytestmark = pytest.mark.feature

OFFICE = "203.0.113.50"
PER_USER = RateLimitConfig(window_ms=60_000, max_requests=4, key_namespace="rate:payment")


@pytest.fixture
def app(app_factory):
    app = app_factory()
    router = APIRouter()

    @router.post("/payments", dependencies=[Depends(rate_limited(lambda guard: guard.payment(PER_USER)))])
    async def pay():
        return {"status": "authorized"}

    @router.post("/payments/default", dependencies=[Depends(rate_limited(RateLimitGuard.payment))])
    async def pay_default():
        return {"status": "authorized"}

    app.include_router(router, prefix="/api")
    return app


@pytest.fixture
def client(app, http_client_factory):
    return http_client_factory(app)


def shopper(token_factory, user_id):
    return {"Authorization": f"Bearer {token_factory(user_id)}", "X-Forwarded-For": OFFICE}


@pytest.mark.asyncio
async def test_accounts_share_the_office_address(app, client, token_factory, fake_redis):
    alice = shopper(token_factory, "alice")
    bob = shopper(token_factory, "bob")

    for _ in range(4):
        assert (await client.post("/api/payments", headers=alice)).status_code == 200
    denied = await client.post("/api/payments", headers=alice)
    assert denied.status_code == 429
    assert denied.headers["X-RateLimit-Limit"] == "4"
    assert app.state.violation_log.all()[-1].identifier == "alice"

    # A second account has a fresh allowance; the address has seen 5 of 10.
    for _ in range(4):
        assert (await client.post("/api/payments", headers=bob)).status_code == 200

    carol = shopper(token_factory, "carol")
    assert (await client.post("/api/payments", headers=carol)).status_code == 200
    blocked = await client.post("/api/payments", headers=carol)
    assert blocked.status_code == 429
    assert blocked.headers["X-RateLimit-Limit"] == "10"
    assert app.state.violation_log.all()[-1].identifier == OFFICE
    assert await fake_redis.zcard(f"rate:payment:ip:{OFFICE}") == 11


@pytest.mark.asyncio
async def test_anonymous_checkout_only_uses_the_address_limit(client, fake_redis):
    for _ in range(10):
        response = await client.post("/api/payments/default", headers={"X-Forwarded-For": OFFICE})
        assert response.status_code == 200
    assert response.headers["X-RateLimit-Limit"] == "10"
    assert await fake_redis.keys("rate:payment:user:*") == []

    assert (await client.post("/api/payments/default", headers={"X-Forwarded-For": OFFICE})).status_code == 429
