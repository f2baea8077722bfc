"""Application factory for creating and configuring the FastAPI application.

This module provides a factory function to create a properly configured FastAPI application
with all necessary middleware, exception handlers, and routers registered.
"""

from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from gatecache.adapters.api.v1 import api_router
from gatecache.core.config.settings import Settings, settings
from gatecache.core.handlers import register_exception_handlers
from gatecache.core.lifecycle import create_lifespan_manager
from gatecache.core.middleware import configure_middleware


def create_application(config: Optional[Settings] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Settings used by the lifespan manager; defaults to the
            process-wide settings.

    Returns:
        FastAPI: The configured FastAPI application instance
    """
    current = config or settings
    app = FastAPI(
        title=current.PROJECT_NAME,
        version=current.VERSION,
        description="Distributed rate limiting and caching for the rental platform API.",
        docs_url="/docs" if current.DEBUG else None,
        redoc_url=None,
        lifespan=create_lifespan_manager(config),
        default_response_class=JSONResponse,
    )

    configure_middleware(app, current)
    register_exception_handlers(app)
    app.include_router(api_router, prefix="/api/v1")

    return app
