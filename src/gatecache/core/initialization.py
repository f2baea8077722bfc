"""Application initialization and setup.

This module handles the initialization tasks required before the application starts:
loading environment variables and configuring logging.
"""

from dotenv import load_dotenv

from gatecache.core.config.settings import settings
from gatecache.core.logging import configure_logging


def initialize_application() -> None:
    """Initialize the application with all necessary setup tasks."""
    load_dotenv(override=True)
    configure_logging(log_level=settings.LOG_LEVEL, json_logs=settings.LOG_JSON)
