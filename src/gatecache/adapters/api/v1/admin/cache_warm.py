"""Admin Cache Warming Endpoints

Triggers a warming run on demand and reports the metrics of the last one.
"""

from typing import Optional

from fastapi import APIRouter, Depends

from gatecache.adapters.api.middleware.rate_limit import RateLimitGuard, rate_limited
from gatecache.core.dependencies.services import Cache, Warmer, require_identity
from gatecache.core.exceptions import StoreUnavailableError
from gatecache.core.logging import logger
from gatecache.domain.caching.warmer import WarmingStatus

from .schemas import CacheWarmRequest, CacheWarmResponse

router = APIRouter(
    dependencies=[Depends(require_identity), Depends(rate_limited(RateLimitGuard.admin))],
)


@router.post("/cache-warm", response_model=CacheWarmResponse)
async def warm_cache(warmer: Warmer, cache: Cache, body: Optional[CacheWarmRequest] = None):
    """Run one warming pass and return its metrics.

    Task failures do not fail the request; they are reported in
    ``metrics.errors`` and turn the status to ``partial``. Without a store
    there is nothing to warm, so the request fails with 503.
    """
    if not cache.is_available():
        raise StoreUnavailableError("Cache warming requires the shared store")
    body = body or CacheWarmRequest()
    logger.info("admin_cache_warm_requested", **body.model_dump())
    metrics = await warmer.warm_cache(body.to_options())
    return CacheWarmResponse(
        success=metrics.status != WarmingStatus.FAILED,
        metrics=metrics.to_dict(),
        message=(
            f"Cache warming {metrics.status.value}. "
            f"Warmed {metrics.keys_warmed} keys in {round(metrics.duration_ms)}ms."
        ),
    )


@router.get("/cache-warm", response_model=CacheWarmResponse)
async def last_cache_warm(warmer: Warmer):
    """Metrics of the last warming run, or none when nothing ran yet."""
    if not warmer.has_run:
        return CacheWarmResponse(success=True, metrics=None, message="Cache warming has not run yet.")
    metrics = warmer.get_metrics()
    return CacheWarmResponse(
        success=metrics.status != WarmingStatus.FAILED,
        metrics=metrics.to_dict(),
        message=f"Last cache warming {metrics.status.value}.",
    )
