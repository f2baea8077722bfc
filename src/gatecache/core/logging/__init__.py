"""
Logging configuration module for structured logging.

This module configures the application's logging system using structlog.
It provides structured logging capabilities with JSON formatting for production
and human-readable console output for development.

Log events are snake_case names with keyword context, e.g.
``logger.warning("rate_limit_exceeded", identifier=..., limit=...)``.
Secrets (store tokens, JWTs, service keys) are never passed as context.
"""

import logging
from typing import Optional

import structlog

from gatecache.core.config.settings import settings


def configure_logging(log_level: Optional[str] = None, json_logs: Optional[bool] = None) -> None:
    """
    Configures the application's logging system.

    This function sets up structlog with ISO timestamps, log level inclusion,
    and either JSON (when LOG_JSON=True) or console rendering. Explicit
    arguments override the values from settings.

    Args:
        log_level: Standard library level name, defaults to ``settings.LOG_LEVEL``.
        json_logs: Render JSON lines, defaults to ``settings.LOG_JSON``.
    """
    level = (log_level or settings.LOG_LEVEL).upper()
    use_json = settings.LOG_JSON if json_logs is None else json_logs

    logging.basicConfig(format="%(message)s", level=level)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.add_log_level,
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer() if use_json else structlog.dev.ConsoleRenderer(),
    ]

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


# Create a singleton logger instance for the application
logger = structlog.get_logger()
