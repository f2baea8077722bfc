from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from gatecache.adapters.api.middleware.rate_limit import RateLimitGuard, get_user_id_from_request
from gatecache.core.config.settings import Settings
from gatecache.domain.caching.services import CacheService
from gatecache.domain.caching.warmer import CacheWarmer
from gatecache.domain.rate_limiting.services import RateLimiter
from gatecache.domain.rate_limiting.violations import RateLimitViolationLog
from gatecache.infrastructure.redis import StoreConnector

__all__ = [
    "get_app_settings",
    "get_store_connector",
    "get_rate_limiter",
    "get_cache_service",
    "get_cache_warmer",
    "get_violation_log",
    "get_rate_limit_guard",
    "require_identity",
    "AppSettings",
    "Connector",
    "Limiter",
    "Cache",
    "Warmer",
    "Violations",
    "Guard",
    "Identity",
]


# ---------------------------------------------------------------------------
# Components built by the lifespan manager and kept on ``app.state``
# ---------------------------------------------------------------------------


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store_connector(request: Request) -> StoreConnector:
    return request.app.state.store_connector


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_cache_service(request: Request) -> CacheService:
    return request.app.state.cache_service


def get_cache_warmer(request: Request) -> CacheWarmer:
    return request.app.state.cache_warmer


def get_violation_log(request: Request) -> RateLimitViolationLog:
    return request.app.state.violation_log


def get_rate_limit_guard(request: Request) -> RateLimitGuard:
    return request.app.state.rate_limit_guard


async def require_identity(request: Request) -> str:
    """Return the caller's user id or fail with 401.

    Admin routes declare this before their rate limit so the admin limiter is
    only ever reached with an identity.
    """
    guard = get_rate_limit_guard(request)
    user_id = await get_user_id_from_request(request, guard.token_verifier)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id


# ---------------------------------------------------------------------------
# Type-annotated dependency shortcuts
# ---------------------------------------------------------------------------


AppSettings = Annotated[Settings, Depends(get_app_settings)]
Connector = Annotated[StoreConnector, Depends(get_store_connector)]
Limiter = Annotated[RateLimiter, Depends(get_rate_limiter)]
Cache = Annotated[CacheService, Depends(get_cache_service)]
Warmer = Annotated[CacheWarmer, Depends(get_cache_warmer)]
Violations = Annotated[RateLimitViolationLog, Depends(get_violation_log)]
Guard = Annotated[RateLimitGuard, Depends(get_rate_limit_guard)]
Identity = Annotated[str, Depends(require_identity)]
