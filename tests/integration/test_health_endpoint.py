import pytest

pytestmark = pytest.mark.integration


@pytest.mark.asyncio
async def test_health_with_store(app_factory, http_client_factory):
    client = http_client_factory(app_factory())

    response = await client.get("/api/v1/health/")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["env"] == "test"
    assert body["services"]["redis"]["healthy"] is True
    assert body["services"]["cache_warming"] == {"configured": False}


@pytest.mark.asyncio
async def test_health_without_store_is_degraded(app_factory, disabled_connector, http_client_factory):
    client = http_client_factory(app_factory(store=disabled_connector))

    response = await client.get("/api/v1/health/")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "degraded"
    assert body["services"]["redis"]["status"] == "unhealthy"
    assert body["services"]["redis"]["enabled"] is False
