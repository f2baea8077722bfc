"""Admin Rate Limit Monitoring Endpoints

Exposes the in-process violation log: a summary of recent denials and the
ability to clear it.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from gatecache.adapters.api.middleware.rate_limit import RateLimitGuard, rate_limited
from gatecache.core.dependencies.services import Identity, Violations, require_identity
from gatecache.core.logging import logger

from .schemas import ClearViolationsResponse, MonitoringResponse

router = APIRouter(
    dependencies=[Depends(require_identity), Depends(rate_limited(RateLimitGuard.admin))],
)

MAX_LISTED_VIOLATIONS = 100


@router.get("/rate-limit-monitoring", response_model=MonitoringResponse)
async def get_violations(
    violations: Violations,
    minutes: int = Query(60, ge=1, le=24 * 60),
    identifier: Optional[str] = Query(None, min_length=1),
):
    """Summarize violations of the last ``minutes``, optionally for one identifier."""
    recent = violations.recent(minutes)
    if identifier:
        recent = [v for v in recent if v.identifier == identifier]
    return MonitoringResponse(
        summary=violations.summarize(recent),
        violations=[v.to_dict() for v in recent[-MAX_LISTED_VIOLATIONS:]],
    )


@router.delete("/rate-limit-monitoring", response_model=ClearViolationsResponse)
async def clear_violations(violations: Violations, admin_id: Identity):
    cleared = violations.clear()
    logger.info("admin_violations_cleared", admin_id=admin_id, cleared=cleared)
    return ClearViolationsResponse(
        success=True,
        message=f"Cleared {cleared} rate limit violations.",
        cleared=cleared,
    )
