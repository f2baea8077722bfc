"""
Shared store (Redis) connection settings.
"""
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings
import logging

logger = logging.getLogger(__name__)

PLACEHOLDER_REDIS_URL = "placeholder_redis_url"
PLACEHOLDER_REDIS_TOKEN = "placeholder_redis_token"


class RedisSettings(BaseSettings):
    """
    Defines settings for the shared store used by the rate limiter and the cache.

    The store is optional: when REDIS_URL or REDIS_TOKEN is missing, left at its
    placeholder value, or the URL does not use TLS (``rediss://``), both features
    run in disabled mode instead of failing at startup.

    Security Note:
        - REDIS_TOKEN is the store's access token and must never be logged
          (OWASP A09:2021 - Security Logging and Monitoring Failures).
        - Only TLS connections are accepted (OWASP A02:2021 - Cryptographic Failures).
    Performance Note:
        - REDIS_OPERATION_TIMEOUT bounds every store call so a hung connection
          cannot stall request handling; timeouts are treated as store outages.
    """
    REDIS_URL: str = ""
    REDIS_TOKEN: SecretStr = SecretStr("")
    REDIS_SOCKET_TIMEOUT: float = Field(default=2.0, gt=0)
    REDIS_OPERATION_TIMEOUT: float = Field(default=2.0, gt=0)
    REDIS_MAX_RETRIES: int = Field(default=3, ge=1, le=10)
    REDIS_RETRY_MAX_DELAY: float = Field(default=10.0, gt=0)

    @field_validator("REDIS_URL", mode="before")
    @classmethod
    def strip_redis_url(cls, v: str | None) -> str:
        """
        Normalises the configured URL; ``None`` becomes an empty string.

        Args:
            v: Raw value from the environment.

        Returns:
            Stripped URL string.
        """
        if v is None:
            return ""
        return str(v).strip()

    @property
    def redis_configured(self) -> bool:
        """True when credentials are present, not placeholders, and use TLS."""
        token = self.REDIS_TOKEN.get_secret_value()
        if not self.REDIS_URL or not token:
            return False
        if self.REDIS_URL == PLACEHOLDER_REDIS_URL or token == PLACEHOLDER_REDIS_TOKEN:
            return False
        return self.REDIS_URL.startswith("rediss://")
