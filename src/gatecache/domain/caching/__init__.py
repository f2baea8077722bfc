"""Cache layer and background cache warming."""

from .invalidation import CacheInvalidationSubscriber
from .services import CacheService
from .value_objects import CACHE_CONFIGS, CacheConfig
from .warmer import (
    CacheWarmer,
    CacheWarmingMetrics,
    WarmEntry,
    WarmingOptions,
    WarmingStatus,
    WarmingTask,
)

__all__ = [
    "CacheInvalidationSubscriber",
    "CacheService",
    "CACHE_CONFIGS",
    "CacheConfig",
    "CacheWarmer",
    "CacheWarmingMetrics",
    "WarmEntry",
    "WarmingOptions",
    "WarmingStatus",
    "WarmingTask",
]
