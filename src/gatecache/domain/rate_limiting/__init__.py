"""Sliding-window rate limiting domain."""

from .entities import RateLimitViolation
from .policies import (
    ENDPOINT_POLICIES,
    RATE_LIMIT_CONFIGS,
    apply_environment_multiplier,
    get_config_by_path,
    resolve_path_policy,
    resolve_policy,
)
from .services import RateLimiter
from .value_objects import RateLimitConfig, RateLimitResult, RateLimitStatus, scale
from .violations import (
    CompositeViolationObserver,
    LoggingViolationObserver,
    RateLimitViolationLog,
)

__all__ = [
    "RateLimitViolation",
    "ENDPOINT_POLICIES",
    "RATE_LIMIT_CONFIGS",
    "apply_environment_multiplier",
    "get_config_by_path",
    "resolve_path_policy",
    "resolve_policy",
    "RateLimiter",
    "RateLimitConfig",
    "RateLimitResult",
    "RateLimitStatus",
    "scale",
    "CompositeViolationObserver",
    "LoggingViolationObserver",
    "RateLimitViolationLog",
]
