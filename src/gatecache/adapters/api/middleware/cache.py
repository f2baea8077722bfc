"""
Response caching for read endpoints.

`with_cache` wraps a Starlette-style handler returning JSON. On a hit the
stored body is served with ``X-Cache: HIT``; on a miss the handler runs and a
2xx JSON body is stored before the response goes out with ``X-Cache: MISS``.
The cache is bypassed entirely when the store is unavailable.
"""

from __future__ import annotations

import asyncio
import functools
import hashlib
import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional, TypeVar

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from structlog import get_logger

from gatecache.domain.caching.services import CacheService
from gatecache.domain.caching.value_objects import CACHE_CONFIGS

logger = get_logger(__name__)

T = TypeVar("T")

Handler = Callable[[Request], Awaitable[Response]]


def request_cache_key(request: Request, prefix: str) -> str:
    """``prefix`` + first 16 hex chars of sha256(``METHOD:path:query``)."""
    key_data = f"{request.method}:{request.url.path}:{request.url.query}"
    return f"{prefix}{hashlib.sha256(key_data.encode('utf-8')).hexdigest()[:16]}"


def _is_get(request: Request) -> bool:
    return request.method == "GET"


@dataclass(frozen=True)
class CacheOptions:
    ttl_seconds: int = 300
    key_prefix: str = "api:"
    key_builder: Optional[Callable[[Request], str]] = None
    should_cache: Callable[[Request], bool] = _is_get
    cache_condition: Callable[[Any], bool] = lambda data: True

    @classmethod
    def for_domain(cls, name: str) -> CacheOptions:
        """Options mirroring one of the named cache domains."""
        config = CACHE_CONFIGS[name]
        return cls(ttl_seconds=config.ttl_seconds, key_prefix=config.key_prefix)


def with_cache(handler: Handler, cache: CacheService, options: Optional[CacheOptions] = None) -> Handler:
    options = options or CacheOptions()

    @functools.wraps(handler)
    async def wrapped(request: Request) -> Response:
        if not cache.is_available() or not options.should_cache(request):
            return await handler(request)

        key = options.key_builder(request) if options.key_builder else request_cache_key(request, options.key_prefix)

        cached = await cache.get(key)
        if cached is not None:
            logger.debug("response_cache_hit", key=key)
            return JSONResponse(cached, headers={"X-Cache": "HIT", "X-Cache-Key": key})

        logger.debug("response_cache_miss", key=key)
        response = await handler(request)

        if 200 <= response.status_code < 300:
            try:
                data = json.loads(response.body)
            except (AttributeError, TypeError, ValueError) as e:
                logger.warning("response_not_cacheable", key=key, error=str(e))
            else:
                if options.cache_condition(data):
                    await cache.set(key, data, options.ttl_seconds)

        response.headers["X-Cache"] = "MISS"
        response.headers["X-Cache-Key"] = key
        return response

    return wrapped


def cacheable(
    cache: CacheService,
    key_builder: Callable[..., str],
    ttl_seconds: Optional[int] = None,
):
    """Decorator caching the result of an async function under ``key_builder(*args, **kwargs)``."""

    def decorator(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs) -> T:
            key = key_builder(*args, **kwargs)
            cached = await cache.get(key)
            if cached is not None:
                return cached
            result = await fn(*args, **kwargs)
            await cache.set(key, result, ttl_seconds)
            return result

        return wrapper

    return decorator


async def invalidate_api_cache(cache: CacheService, patterns: Iterable[str]) -> int:
    """Invalidate ``patterns`` concurrently and return the total removed."""
    results = await asyncio.gather(*(cache.invalidate(pattern) for pattern in patterns))
    total = sum(results)
    logger.info("api_cache_invalidated", total=total)
    return total
