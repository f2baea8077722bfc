"""
Rate limiting settings.
"""
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class RateLimitSettings(BaseSettings):
    """
    Global switches for the sliding-window rate limiter.

    Per-endpoint limits live in ``gatecache.domain.rate_limiting.policies``;
    these settings only toggle the feature, size the violation log and allow
    overriding the environment multiplier applied to every policy.
    """
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_VIOLATION_CAPACITY: int = Field(default=1000, ge=1)
    RATE_LIMIT_ENV_MULTIPLIER: Optional[int] = Field(default=None, ge=1)
