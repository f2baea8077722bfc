from typing import Dict, Optional

import httpx
import pytest
import pytest_asyncio
from fakeredis import FakeAsyncRedis
from httpx import ASGITransport, AsyncClient
from jose import jwt
from starlette.requests import Request

from gatecache.core.application import create_application
from gatecache.core.config.settings import Settings, create_settings
from gatecache.core.lifecycle import attach_components
from gatecache.core.metrics import MetricsCollector
from gatecache.domain.caching.services import CacheService
from gatecache.domain.rate_limiting.services import RateLimiter
from gatecache.infrastructure.data_sources.postgrest import PostgrestFleetDataSource
from gatecache.infrastructure.redis import RetryPolicy, StoreConnector

TEST_REDIS_URL = "rediss://store.test:6380"
TEST_JWT_SECRET = "test-jwt-secret"
START_MS = 1_700_000_000_000

CARS = [
    {"id": "c1", "name": "Roadster", "category": {"id": 1, "name": "Sports"}},
    {"id": "c2", "name": "Coupe", "category": {"id": 1, "name": "Sports"}},
]
RECENT_BOOKINGS = [{"car_id": "c2"}, {"car_id": "c1"}, {"car_id": "c2"}]


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now_ms: int = START_MS):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


def fleet_handler(request: httpx.Request) -> httpx.Response:
    """Minimal PostgREST stand-in for the tables the warmer reads."""
    table = request.url.path.rsplit("/", 1)[-1]
    params = request.url.params
    if table == "cars":
        if "id" in params:
            car_id = params["id"].removeprefix("eq.")
            return httpx.Response(200, json=[car for car in CARS if car["id"] == car_id])
        if params.get("select") == "id":
            return httpx.Response(200, json=[{"id": car["id"]} for car in CARS])
        return httpx.Response(200, json=CARS)
    if table == "bookings":
        if params.get("select") == "car_id":
            return httpx.Response(200, json=RECENT_BOOKINGS)
        return httpx.Response(200, json=[])
    if table == "car_availability":
        return httpx.Response(200, json=[])
    return httpx.Response(404, json={"message": f"unknown table {table}"})


def make_settings(**overrides) -> Settings:
    values = {
        "APP_ENV": "test",
        "REDIS_URL": TEST_REDIS_URL,
        "REDIS_TOKEN": "test-token",
        "JWT_SECRET_KEY": TEST_JWT_SECRET,
        "SUPABASE_URL": "",
        "SUPABASE_SERVICE_ROLE_KEY": "",
        "ENABLE_CACHE_WARMING_ON_STARTUP": False,
    }
    values.update(overrides)
    return create_settings(**values)


def make_token(subject: str, secret: str = TEST_JWT_SECRET) -> str:
    return jwt.encode({"sub": subject}, secret, algorithm="HS256")


def make_request(
    path: str = "/api/test",
    method: str = "GET",
    headers: Optional[Dict[str, str]] = None,
    query_string: str = "",
) -> Request:
    scope = {
        "type": "http",
        "method": method,
        "path": path,
        "query_string": query_string.encode(),
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": ("127.0.0.1", 50000),
        "server": ("test", 80),
        "scheme": "http",
    }
    return Request(scope)


@pytest.fixture
def test_settings() -> Settings:
    return make_settings()


@pytest.fixture
def disabled_settings() -> Settings:
    return make_settings(REDIS_URL="", REDIS_TOKEN="")


@pytest_asyncio.fixture
async def fake_redis():
    client = FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def connector(test_settings, fake_redis) -> StoreConnector:
    return StoreConnector(
        test_settings,
        client_factory=lambda: fake_redis,
        retry_policy=RetryPolicy(max_attempts=2, max_delay=0.01, multiplier=0.001),
    )


@pytest.fixture
def disabled_connector(disabled_settings) -> StoreConnector:
    return StoreConnector(disabled_settings)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture
def limiter(connector, clock, metrics) -> RateLimiter:
    return RateLimiter(connector, clock=clock, metrics=metrics)


@pytest.fixture
def cache(connector, metrics) -> CacheService:
    return CacheService(connector, metrics=metrics)


@pytest.fixture
def settings_factory():
    return make_settings


@pytest.fixture
def request_factory():
    return make_request


@pytest.fixture
def token_factory():
    return make_token


@pytest.fixture
def app_factory(test_settings, connector, clock):
    """Build the HTTP application wired to the in-memory store.

    The ASGI test transport does not run the lifespan, so components are
    attached directly.
    """
    def build(config: Optional[Settings] = None, store: Optional[StoreConnector] = None, **components):
        config = config or test_settings
        app = create_application(config)
        attach_components(app, config, connector=store or connector, clock=clock, **components)
        return app

    return build


@pytest_asyncio.fixture
async def http_client_factory():
    clients = []

    def open_client(app) -> AsyncClient:
        client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        clients.append(client)
        return client

    yield open_client
    for client in clients:
        await client.aclose()


@pytest.fixture
def fleet_source() -> PostgrestFleetDataSource:
    client = httpx.AsyncClient(base_url="https://db.test/rest/v1", transport=httpx.MockTransport(fleet_handler))
    return PostgrestFleetDataSource(client=client)
