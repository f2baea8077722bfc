"""
Cache and cache-warming settings.
"""
from pydantic import Field
from pydantic_settings import BaseSettings


class CacheSettings(BaseSettings):
    """
    Defines settings for the cache layer and the background cache warmer.

    Performance Note:
        - CACHE_WARMING_MAX_CONCURRENCY caps in-flight warming tasks so a warming
          burst cannot overwhelm the upstream database.
        - CACHE_WARMING_STARTUP_DELAY (milliseconds) gives the server time to
          finish booting before the first warming run starts.
    """
    CACHE_DEFAULT_TTL: int = Field(default=300, ge=1)
    ENABLE_CACHE_WARMING_ON_STARTUP: bool = False
    CACHE_WARMING_STARTUP_DELAY: int = Field(default=5000, ge=0)
    CACHE_WARMING_MAX_CONCURRENCY: int = Field(default=10, ge=1)
    CACHE_WARMING_BATCH_SIZE: int = Field(default=5, ge=1)
