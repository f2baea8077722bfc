"""End-to-end behavior of rate-limited and cached routes mounted on the app."""

import pytest
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from gatecache.adapters.api.middleware.cache import CacheOptions, with_cache
from gatecache.adapters.api.middleware.rate_limit import RateLimitGuard, RateLimitOptions, rate_limited
from gatecache.domain.rate_limiting.value_objects import RateLimitConfig

pytestmark = pytest.mark.integration

TIGHT = RateLimitConfig(window_ms=60_000, max_requests=2, key_namespace="rate:tight")


def build_routes(app):
    router = APIRouter()

    @router.get("/tight", dependencies=[Depends(rate_limited(lambda guard: RateLimitOptions(config=TIGHT)))])
    async def tight():
        return {"ok": True}

    @router.get("/miswired", dependencies=[Depends(rate_limited(RateLimitGuard.admin))])
    async def miswired():
        return {"ok": True}

    @router.get("/browse", dependencies=[Depends(rate_limited(lambda guard: guard.dynamic))])
    async def browse():
        return {"ok": True}

    @router.post("/email/contact", dependencies=[Depends(rate_limited(lambda guard: guard.by_path))])
    async def contact():
        return {"sent": True}

    calls = []

    async def fleet(request):
        calls.append(request.url.path)
        return JSONResponse({"cars": ["c1", "c2"]})

    app.include_router(router, prefix="/api")
    app.router.add_route(
        "/api/fleet",
        with_cache(fleet, app.state.cache_service, CacheOptions.for_domain("fleet_listing")),
    )
    return calls


@pytest.fixture
def app(app_factory):
    return app_factory()


@pytest.fixture
def client(app, http_client_factory):
    return http_client_factory(app)


@pytest.mark.asyncio
async def test_over_limit_returns_429(app, client, clock):
    build_routes(app)
    headers = {"X-Forwarded-For": "203.0.113.7"}

    first = await client.get("/api/tight", headers=headers)
    second = await client.get("/api/tight", headers=headers)
    clock.advance(15_000)
    third = await client.get("/api/tight", headers=headers)

    assert first.status_code == second.status_code == 200
    assert first.headers["X-RateLimit-Remaining"] == "1"
    assert third.status_code == 429
    assert third.headers["Retry-After"] == "45"
    assert third.headers["X-RateLimit-Remaining"] == "0"
    body = third.json()
    assert body["retry_after"] == 45
    assert "detail" in body
    assert app.state.violation_log.all()[-1].endpoint == "/api/tight"

    other_client = await client.get("/api/tight", headers={"X-Forwarded-For": "198.51.100.2"})
    assert other_client.status_code == 200


@pytest.mark.asyncio
async def test_window_slides_back_open(app, client, clock):
    build_routes(app)

    await client.get("/api/tight")
    await client.get("/api/tight")
    assert (await client.get("/api/tight")).status_code == 429

    clock.advance(60_001)
    assert (await client.get("/api/tight")).status_code == 200


@pytest.mark.asyncio
async def test_admin_preset_without_identity_is_a_server_error(app, client):
    build_routes(app)

    response = await client.get("/api/miswired")

    assert response.status_code == 500
    assert response.json()["code"] == "identity_required"


@pytest.mark.asyncio
async def test_dynamic_limit_depends_on_token(app, client, token_factory):
    build_routes(app)

    anonymous = await client.get("/api/browse")
    signed_in = await client.get("/api/browse", headers={"Authorization": f"Bearer {token_factory('u-1')}"})

    assert anonymous.headers["X-RateLimit-Limit"] == "60"
    assert signed_in.headers["X-RateLimit-Limit"] == "120"


@pytest.mark.asyncio
async def test_contact_form_uses_endpoint_policy(app, client):
    build_routes(app)
    headers = {"X-Forwarded-For": "198.51.100.2"}

    responses = [await client.post("/api/email/contact", headers=headers) for _ in range(6)]

    assert [r.status_code for r in responses] == [200] * 5 + [429]
    assert responses[0].headers["X-RateLimit-Limit"] == "5"
    assert responses[-1].headers["Retry-After"] == "3600"


@pytest.mark.asyncio
async def test_rate_limiting_disabled(app_factory, settings_factory, http_client_factory):
    app = app_factory(config=settings_factory(RATE_LIMIT_ENABLED=False))
    build_routes(app)
    client = http_client_factory(app)

    for _ in range(5):
        response = await client.get("/api/tight")
        assert response.status_code == 200
        assert "X-RateLimit-Limit" not in response.headers


@pytest.mark.asyncio
async def test_store_outage_fails_open(app_factory, disabled_connector, http_client_factory):
    app = app_factory(store=disabled_connector)
    build_routes(app)
    client = http_client_factory(app)

    for _ in range(5):
        response = await client.get("/api/tight")
        assert response.status_code == 200
    assert response.headers["X-RateLimit-Remaining"] == "2"


@pytest.mark.asyncio
async def test_cached_route_serves_hits(app, client):
    calls = build_routes(app)

    miss = await client.get("/api/fleet")
    hit = await client.get("/api/fleet")

    assert miss.headers["X-Cache"] == "MISS"
    assert hit.headers["X-Cache"] == "HIT"
    assert hit.json() == {"cars": ["c1", "c2"]}
    assert calls == ["/api/fleet"]
    assert hit.headers["X-Cache-Key"].startswith("fleet:")


@pytest.mark.asyncio
async def test_cached_route_bypassed_without_store(app_factory, disabled_connector, http_client_factory):
    app = app_factory(store=disabled_connector)
    calls = build_routes(app)
    client = http_client_factory(app)

    response = await client.get("/api/fleet")
    await client.get("/api/fleet")

    assert "X-Cache" not in response.headers
    assert len(calls) == 2
