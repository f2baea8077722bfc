"""Admin endpoints: on-demand cache warming and rate-limit monitoring.

Every admin route requires a verified identity and is limited per admin
user by the ``admin`` policy.
"""

from fastapi import APIRouter

from .cache_warm import router as cache_warm_router
from .rate_limit_monitoring import router as monitoring_router

router = APIRouter()
router.include_router(cache_warm_router)
router.include_router(monitoring_router)
