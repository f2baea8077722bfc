"""Metrics endpoint exposing the in-process cache and rate-limit counters.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends

from gatecache.core.dependencies.services import require_identity
from gatecache.core.metrics import metrics_collector

router = APIRouter()


@router.get("/", response_model=Dict[str, Any], dependencies=[Depends(require_identity)])
async def get_metrics():
    """Get application metrics.

    Counters are per process: cache hits and misses per operation, rate-limit
    outcomes per namespace, store errors per operation and warming runs.
    Callers must present a valid bearer token.
    """
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "metrics": metrics_collector.get_metrics(),
    }
