"""
Rate Limiting Value Objects

Immutable value objects representing core concepts in the rate limiting domain.

Value Objects:
- RateLimitConfig: One rate-limit policy (window, quota, key namespace)
- RateLimitResult: Outcome of a single check, convertible to HTTP headers
- RateLimitStatus: Read-only quota gauge used by monitoring

Design Principles:
- Immutability: All value objects are immutable after creation
- Validation: Business rules enforced at construction time
- Equality: Value-based equality for proper hashing and comparison
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Dict, Optional

from gatecache.core.exceptions import InvalidRateLimitConfigError

if TYPE_CHECKING:
    from gatecache.domain.interfaces import ViolationObserver


@dataclass(frozen=True, slots=True)
class RateLimitConfig:
    """
    Immutable value object describing one sliding-window policy.

    Many requests share one config; identifiers are appended to
    ``key_namespace`` to build the per-identifier store key.

    Business Rules:
    - Window length must be positive
    - Maximum requests must be positive
    - Namespace must not be empty
    """
    window_ms: int
    max_requests: int
    key_namespace: str
    dual_limit_enabled: bool = False
    on_violation: Optional["ViolationObserver"] = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        """Validate policy configuration at construction time"""
        if self.window_ms <= 0:
            raise InvalidRateLimitConfigError("window_ms must be positive")
        if self.max_requests <= 0:
            raise InvalidRateLimitConfigError("max_requests must be positive")
        if not self.key_namespace:
            raise InvalidRateLimitConfigError("key_namespace must not be empty")

    @property
    def window_seconds(self) -> int:
        """Window length rounded up to whole seconds (store TTL granularity)."""
        return math.ceil(self.window_ms / 1000)

    def key_for(self, identifier: str) -> str:
        """Store key of the sliding window for ``identifier``."""
        return f"{self.key_namespace}:{identifier}"

    def scoped(self, suffix: str) -> RateLimitConfig:
        """Copy of this policy under ``key_namespace:suffix``."""
        return replace(self, key_namespace=f"{self.key_namespace}:{suffix}")

    def with_observer(self, observer: Optional["ViolationObserver"]) -> RateLimitConfig:
        """Copy of this policy notifying ``observer`` on violations."""
        return replace(self, on_violation=observer)

    @classmethod
    def per_seconds(cls, max_requests: int, seconds: int, key_namespace: str, **kwargs) -> RateLimitConfig:
        """Build a policy from a window expressed in seconds."""
        return cls(window_ms=seconds * 1000, max_requests=max_requests, key_namespace=key_namespace, **kwargs)


def scale(config: RateLimitConfig, multiplier: float) -> RateLimitConfig:
    """
    Return a copy of ``config`` with its quota multiplied.

    The scaled quota never drops below one request.
    """
    if multiplier <= 0:
        raise InvalidRateLimitConfigError("multiplier must be positive")
    return replace(config, max_requests=max(1, int(config.max_requests * multiplier)))


def format_reset_timestamp(moment: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a ``Z`` suffix."""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    """
    Outcome of one rate-limit check. Never persisted.

    Attributes:
        allowed: Whether the request may proceed.
        limit: Quota of the policy that produced this result.
        remaining: Requests left in the current window, never negative.
        reset_at: When the window started by this request ends (UTC).
        retry_after_seconds: Seconds to wait, only set on denial.
    """
    allowed: bool
    limit: int
    remaining: int
    reset_at: datetime
    retry_after_seconds: Optional[int] = None

    def __post_init__(self):
        if self.remaining < 0:
            raise ValueError("remaining cannot be negative")

    @classmethod
    def fail_open(cls, config: RateLimitConfig, now_ms: int) -> RateLimitResult:
        """Result used whenever the store cannot answer: allow with a full quota."""
        return cls(
            allowed=True,
            limit=config.max_requests,
            remaining=config.max_requests,
            reset_at=from_epoch_ms(now_ms + config.window_ms),
            retry_after_seconds=None,
        )

    def to_http_headers(self) -> Dict[str, str]:
        """Standard rate-limit response headers; ``Retry-After`` only on denial."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": format_reset_timestamp(self.reset_at),
        }
        if not self.allowed and self.retry_after_seconds is not None:
            headers["Retry-After"] = str(self.retry_after_seconds)
        return headers


@dataclass(frozen=True, slots=True)
class RateLimitStatus:
    """Quota gauge for one identifier under one policy."""
    remaining: int
    limit: int

    @property
    def used(self) -> int:
        return self.limit - self.remaining

    @property
    def percent_used(self) -> int:
        return round(self.used / self.limit * 100)


def from_epoch_ms(epoch_ms: int) -> datetime:
    return datetime.fromtimestamp(0, tz=timezone.utc) + timedelta(milliseconds=epoch_ms)
