"""Main application settings and configuration management.

This module composes all the application settings from the different modules
(app, redis, rate limiting, cache, auth, data source) into a single, accessible
`Settings` class.

It loads settings from environment variables and .env files, validates them,
and provides a single `settings` object for use throughout the application.

Environment Support:
- Development: Uses .env, debug enabled
- Test: Uses .env.test
- Staging: Uses .env.staging
- Production: Uses .env.production
"""

import logging
import os
from pathlib import Path

from pydantic_settings import SettingsConfigDict

from .app import AppSettings
from .auth import AuthSettings
from .cache import CacheSettings
from .data_source import DataSourceSettings
from .rate_limiting import RateLimitSettings
from .redis import RedisSettings

logger = logging.getLogger(__name__)


class Settings(
    AppSettings,
    RedisSettings,
    RateLimitSettings,
    CacheSettings,
    AuthSettings,
    DataSourceSettings,
):
    """The main settings class that aggregates all application configurations.

    It inherits from all the specialized settings classes, providing a unified
    interface to all configuration parameters.

    Security Note:
        - Sensitive fields (REDIS_TOKEN, JWT_SECRET_KEY, SUPABASE_SERVICE_ROLE_KEY)
          are SecretStr and never logged (OWASP A02:2021 - Cryptographic Failures).
    Usage:
        - Access settings via the singleton instance `settings` throughout the application.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="allow"
    )

    def __init__(self, **kwargs):
        """Initialize settings with environment-specific configuration."""
        super().__init__(**kwargs)
        self._set_environment_defaults(self.APP_ENV)

    def _set_environment_defaults(self, env: str) -> None:
        """Set environment-specific default values.

        Args:
            env: Environment name
        """
        if env == "development":
            self.DEBUG = True

        logger.info(f"Application running in {env} environment")
        logger.info(f"Shared store configured: {self.redis_configured}")
        logger.info(f"Warming data source configured: {self.data_source_configured}")


def create_settings(**overrides) -> Settings:
    """Create settings instance with environment-specific configuration.

    Args:
        **overrides: Explicit field values, mainly used by tests and the CLI.

    Returns:
        Settings: Configured settings instance
    """
    env = os.getenv("APP_ENV", "development")

    env_files = {
        "development": ".env",
        "test": ".env.test",
        "staging": ".env.staging",
        "production": ".env.production",
    }

    env_file = env_files.get(env, ".env")

    if env != "development" and Path(env_file).exists():
        logger.info(f"Loading environment configuration from {env_file}")
        return Settings(_env_file=env_file, **overrides)
    if Path(".env").exists():
        logger.info(f"Loading environment configuration from .env (environment: {env})")
    else:
        logger.info(f"No .env file found, using environment variables only (environment: {env})")
    return Settings(**overrides)


# Create a singleton instance of the settings to be used across the application.
settings = create_settings()
