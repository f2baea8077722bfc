"""Middleware configuration for the FastAPI application.

Rate limiting and response caching are applied per route (see
``gatecache.adapters.api.middleware``); only CORS is global.
"""

from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gatecache.core.config.settings import Settings, settings


def configure_middleware(app: FastAPI, config: Optional[Settings] = None) -> None:
    """Configure all middleware for the FastAPI application.

    Args:
        app (FastAPI): The FastAPI application instance
        config (Settings): Source of ALLOWED_ORIGINS; defaults to the process settings
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=(config or settings).ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
            "Retry-After",
            "X-Cache",
        ],
    )
