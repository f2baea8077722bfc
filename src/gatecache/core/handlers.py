"""
Global exception handlers for the FastAPI application.

This module contains centralized handlers for custom application exceptions,
translating them into appropriate HTTP responses.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette import status
from structlog import get_logger

from gatecache.core.exceptions import (
    ContractError,
    DataSourceError,
    GateCacheError,
    RateLimitExceededError,
    StoreUnavailableError,
)

__all__ = [
    "rate_limit_exceeded_error_handler",
    "store_unavailable_error_handler",
    "contract_error_handler",
    "data_source_error_handler",
    "gatecache_error_handler",
    "register_exception_handlers",
]

logger = get_logger(__name__)


def _client_host(request: Request) -> str | None:
    return request.client.host if request.client else None


async def rate_limit_exceeded_error_handler(
    request: Request, exc: RateLimitExceededError
) -> JSONResponse:
    """Handles `RateLimitExceededError`, returning a `429`.

    The response carries every rate-limit header computed by the guard,
    including `Retry-After`.

    Args:
        request: The incoming `Request` object.
        exc: The `RateLimitExceededError` instance.

    Returns:
        A `JSONResponse` with a 429 status code, error detail and headers.
    """
    logger.warning(
        "rate_limit_exceeded",
        client_ip=_client_host(request),
        path=request.url.path,
        retry_after=exc.retry_after_seconds,
    )
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"detail": exc.message, "retry_after": exc.retry_after_seconds},
        headers=exc.headers,
    )


async def store_unavailable_error_handler(
    request: Request, exc: StoreUnavailableError
) -> JSONResponse:
    """Handles `StoreUnavailableError`, returning a `503 Service Unavailable`."""
    logger.error(
        "store_unavailable",
        error_message=str(exc),
        path=request.url.path,
    )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": exc.message},
    )


async def data_source_error_handler(request: Request, exc: DataSourceError) -> JSONResponse:
    """Handles `DataSourceError`, returning a `502 Bad Gateway`."""
    logger.error(
        "data_source_error",
        error_message=str(exc),
        path=request.url.path,
    )
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"detail": exc.message},
    )


async def contract_error_handler(request: Request, exc: ContractError) -> JSONResponse:
    """Handles `ContractError`, returning a `500 Internal Server Error`.

    Contract errors mean a route or policy is wired incorrectly, so they are
    logged at error level with their code.

    Args:
        request: The incoming `Request` object.
        exc: The `ContractError` instance.

    Returns:
        A `JSONResponse` with a 500 status code and a generic detail.
    """
    logger.error(
        "contract_error",
        error_code=exc.code,
        error_message=exc.message,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Server misconfiguration.", "code": exc.code},
    )


async def gatecache_error_handler(request: Request, exc: GateCacheError) -> JSONResponse:
    """Handles the base `GateCacheError`, returning a `500 Internal Server Error`.

    This serves as a fallback for any custom application errors that do not
    have a more specific handler.
    """
    logger.error(
        "unhandled_application_error",
        error_code=exc.code,
        error_message=exc.message,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "An unexpected error occurred."},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Registers all custom exception handlers with the FastAPI application.

    Args:
        app: The `FastAPI` application instance.
    """
    app.add_exception_handler(RateLimitExceededError, rate_limit_exceeded_error_handler)
    app.add_exception_handler(StoreUnavailableError, store_unavailable_error_handler)
    app.add_exception_handler(DataSourceError, data_source_error_handler)
    app.add_exception_handler(ContractError, contract_error_handler)
    app.add_exception_handler(GateCacheError, gatecache_error_handler)
