from .cache import CacheOptions, cacheable, invalidate_api_cache, with_cache
from .rate_limit import (
    RateLimitGuard,
    RateLimitOptions,
    get_client_ip,
    get_user_id_from_request,
    rate_limited,
)

__all__ = [
    "CacheOptions",
    "cacheable",
    "invalidate_api_cache",
    "with_cache",
    "RateLimitGuard",
    "RateLimitOptions",
    "get_client_ip",
    "get_user_id_from_request",
    "rate_limited",
]
