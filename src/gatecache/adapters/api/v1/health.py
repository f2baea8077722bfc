from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter
from pydantic import BaseModel

from gatecache.core.dependencies.services import AppSettings, Connector, Warmer
from gatecache.core.logging import logger

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    env: str
    message: str
    services: Dict[str, Any]
    timestamp: datetime


@router.get("/", response_model=HealthResponse)
async def health_check(config: AppSettings, connector: Connector, warmer: Warmer):
    """
    Report the health of the shared store.

    A disabled store is not an outage: rate limiting fails open and the cache
    degrades to pass-through, so the service reports ``degraded`` rather than
    failing the probe.
    """
    store_healthy = await connector.health_check()
    store = {"status": "healthy" if store_healthy else "unhealthy", **connector.status()}
    if not store_healthy:
        logger.warning("store_health_check_failed", enabled=connector.enabled)

    overall_status = "ok" if store_healthy else "degraded"
    return HealthResponse(
        status=overall_status,
        env=config.APP_ENV,
        message="Service is running" if store_healthy else "Service is running without its store",
        services={
            "redis": store,
            "cache_warming": {"configured": warmer.is_configured},
        },
        timestamp=datetime.now(timezone.utc),
    )
