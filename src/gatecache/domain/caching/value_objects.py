"""
Caching Value Objects

- CacheConfig: a named cache domain with its TTL, key prefix and the domain
  events that invalidate it.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Tuple

from gatecache.domain import events


@dataclass(frozen=True, slots=True)
class CacheConfig:
    """
    Immutable description of one cache domain.

    Business Rules:
    - TTL cannot be negative (0 means no expiry)
    - Key prefix must not be empty
    """
    ttl_seconds: int
    key_prefix: str
    invalidation_events: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.ttl_seconds < 0:
            raise ValueError("ttl_seconds cannot be negative")
        if not self.key_prefix:
            raise ValueError("key_prefix must not be empty")

    @property
    def pattern(self) -> str:
        """Glob matching every key of this domain."""
        return f"{self.key_prefix}*"

    def invalidated_by(self, event_name: str) -> bool:
        return event_name in self.invalidation_events


CACHE_CONFIGS: Mapping[str, CacheConfig] = MappingProxyType({
    "car_availability": CacheConfig(
        ttl_seconds=300,
        key_prefix="availability:",
        invalidation_events=(events.BOOKING_CREATED, events.BOOKING_CANCELLED),
    ),
    "fleet_listing": CacheConfig(
        ttl_seconds=3600,
        key_prefix="fleet:",
        invalidation_events=(events.CAR_UPDATED, events.CAR_CREATED, events.CAR_DELETED),
    ),
    "car_details": CacheConfig(
        ttl_seconds=1800,
        key_prefix="car:",
        invalidation_events=(events.CAR_UPDATED,),
    ),
})
