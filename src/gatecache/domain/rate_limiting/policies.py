"""
Rate-limit policy catalogue.

Two tables are defined:

- ``RATE_LIMIT_CONFIGS``: the policies used by the request guard presets
  (public, authenticated, booking, payment, upload, webhook, admin).
- ``ENDPOINT_POLICIES``: finer-grained per-endpoint policies, looked up by
  request path through `get_config_by_path` and applied by the guard's
  ``by_path`` preset.

Limits are production values; `apply_environment_multiplier` relaxes them for
development and staging.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Optional

from gatecache.domain.rate_limiting.value_objects import RateLimitConfig, scale
from gatecache.domain.rate_limiting.violations import LoggingViolationObserver

MINUTE = 60
HOUR = 3600

RATE_LIMIT_CONFIGS: Mapping[str, RateLimitConfig] = MappingProxyType({
    "public": RateLimitConfig(window_ms=60_000, max_requests=60, key_namespace="rate:public"),
    "authenticated": RateLimitConfig(window_ms=60_000, max_requests=120, key_namespace="rate:auth"),
    "booking": RateLimitConfig(window_ms=3_600_000, max_requests=10, key_namespace="rate:booking"),
    "payment": RateLimitConfig(
        window_ms=60_000,
        max_requests=10,
        key_namespace="rate:payment",
        dual_limit_enabled=True,
        on_violation=LoggingViolationObserver("payment"),
    ),
    "upload": RateLimitConfig(
        window_ms=60_000,
        max_requests=5,
        key_namespace="rate:upload",
        on_violation=LoggingViolationObserver("upload"),
    ),
    "webhook": RateLimitConfig(window_ms=60_000, max_requests=100, key_namespace="rate:webhook"),
    "admin": RateLimitConfig(window_ms=60_000, max_requests=300, key_namespace="rate:admin"),
})

ENDPOINT_POLICIES: Mapping[str, RateLimitConfig] = MappingProxyType({
    "public.default": RateLimitConfig.per_seconds(60, MINUTE, "rl:public"),
    "public.search": RateLimitConfig.per_seconds(30, MINUTE, "rl:public:search"),
    "public.car_details": RateLimitConfig.per_seconds(100, MINUTE, "rl:public:cars"),
    "authenticated.default": RateLimitConfig.per_seconds(120, MINUTE, "rl:auth"),
    "authenticated.profile": RateLimitConfig.per_seconds(60, MINUTE, "rl:auth:profile"),
    "authenticated.reviews": RateLimitConfig.per_seconds(5, 5 * MINUTE, "rl:auth:reviews"),
    "booking.creation": RateLimitConfig.per_seconds(10, HOUR, "rl:booking:create"),
    "booking.availability": RateLimitConfig.per_seconds(60, MINUTE, "rl:booking:availability"),
    "booking.payment": RateLimitConfig.per_seconds(5, 5 * MINUTE, "rl:booking:payment"),
    "admin.default": RateLimitConfig.per_seconds(300, MINUTE, "rl:admin"),
    "admin.reports": RateLimitConfig.per_seconds(10, MINUTE, "rl:admin:reports"),
    "admin.bulk_operations": RateLimitConfig.per_seconds(5, 5 * MINUTE, "rl:admin:bulk"),
    "api.webhooks": RateLimitConfig.per_seconds(100, MINUTE, "rl:api:webhooks"),
    "api.upload": RateLimitConfig.per_seconds(20, 5 * MINUTE, "rl:api:upload"),
    "special.email_verification": RateLimitConfig.per_seconds(3, HOUR, "rl:special:email-verify"),
    "special.password_reset": RateLimitConfig.per_seconds(3, HOUR, "rl:special:password-reset"),
    "special.contact_form": RateLimitConfig.per_seconds(5, HOUR, "rl:special:contact"),
})

PATH_POLICIES: Mapping[str, str] = MappingProxyType({
    "/api/cars": "public.default",
    "/api/cars/availability": "booking.availability",
    "/api/hero-content": "public.default",
    "/api/bookings": "booking.creation",
    "/api/bookings/create-paypal-order": "booking.payment",
    "/api/bookings/authorize-paypal-order": "booking.payment",
    "/api/bookings/capture-payment": "booking.payment",
    "/api/bookings/void-payment": "booking.payment",
    "/api/email/contact": "special.contact_form",
    "/api/email/booking": "special.email_verification",
    "/api/admin/bookings": "admin.default",
    "/api/admin/cars": "admin.default",
    "/api/admin/analytics": "admin.reports",
    "/api/admin/inbox": "admin.default",
    "/api/cars/upload": "api.upload",
    "/api/upload-placeholder": "api.upload",
    "/api/webhooks/paypal": "api.webhooks",
    "/api/webhooks/docuseal": "api.webhooks",
    "/api/webhooks/resend": "api.webhooks",
})

ENVIRONMENT_MULTIPLIERS: Mapping[str, int] = MappingProxyType({
    "development": 10,
    "staging": 2,
    "production": 1,
    "test": 1,
})


def get_config_by_path(path: str) -> RateLimitConfig:
    """
    Resolve the endpoint policy for a request path.

    Exact matches win; otherwise admin and webhook prefixes and review paths
    are recognised, and everything else falls back to the public default.
    """
    name = PATH_POLICIES.get(path)
    if name is None:
        if path.startswith("/api/admin/"):
            name = "admin.default"
        elif path.startswith("/api/webhooks/"):
            name = "api.webhooks"
        elif "/reviews" in path:
            name = "authenticated.reviews"
        else:
            name = "public.default"
    return ENDPOINT_POLICIES[name]


def environment_multiplier(environment: str, override: Optional[int] = None) -> int:
    """Quota multiplier for ``environment``; unknown environments get 1."""
    if override is not None:
        return override
    return ENVIRONMENT_MULTIPLIERS.get(environment, 1)


def apply_environment_multiplier(
    config: RateLimitConfig,
    environment: str = "production",
    override: Optional[int] = None,
) -> RateLimitConfig:
    """Scale ``config`` by the multiplier of ``environment``."""
    multiplier = environment_multiplier(environment, override)
    if multiplier == 1:
        return config
    return scale(config, multiplier)


def resolve_policy(name: str, environment: str = "production", override: Optional[int] = None) -> RateLimitConfig:
    """Look up a guard policy by name and scale it for ``environment``.

    Raises:
        KeyError: If ``name`` is not a known policy.
    """
    return apply_environment_multiplier(RATE_LIMIT_CONFIGS[name], environment, override)


def resolve_path_policy(path: str, environment: str = "production", override: Optional[int] = None) -> RateLimitConfig:
    """Endpoint policy for ``path`` scaled for ``environment``."""
    return apply_environment_multiplier(get_config_by_path(path), environment, override)
