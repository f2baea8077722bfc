"""Centralized, structured exception hierarchy for gatecache.

Each exception carries a machine-readable `code` for programmatic error
handling and a human-readable `message` for logging and API responses.

The hierarchy follows the error taxonomy of the request-gating layer:
- Absent configuration never raises; the feature is disabled instead.
- Transient store failures are recovered locally by the component that hit
  them. `StoreUnavailableError` is for operations that must fail hard, such as
  on-demand cache warming (HTTP 503).
- Policy violations raise `RateLimitExceededError`, the only error that is
  expected to reach clients (HTTP 429).
- Contract errors (`ContractError` and subclasses) propagate as-is.
"""

from __future__ import annotations

from typing import Dict, Final, Mapping, Optional

__all__: Final = [
    "GateCacheError",
    "RateLimitError",
    "RateLimitExceededError",
    "StoreUnavailableError",
    "ContractError",
    "InvalidRateLimitConfigError",
    "IdentityRequiredError",
    "CacheWriteError",
    "DataSourceError",
]


class GateCacheError(Exception):
    """Base exception class for all custom errors in the application.

    Attributes:
        message (str): A human-readable error message, suitable for logging.
        code (str): A unique, machine-readable error code.
    """

    message: str
    code: str = "generic_error"

    def __init__(self, message: str, code: str = "generic_error"):
        self.message = message
        self.code = code
        Exception.__init__(self, self.message)

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Operational errors (typically map to 429 Too Many Requests or 503 Service Unavailable)
# ---------------------------------------------------------------------------


class RateLimitError(GateCacheError):
    """Base class for rate limiting related errors.

    This exception and its subclasses map to a `429 Too Many Requests` HTTP
    status code.
    """

    def __init__(self, message: str | None = None, code: str = "rate_limit_exceeded"):
        if message is None:
            message = "Too many requests. Please try again later."
        super().__init__(message, code)


class RateLimitExceededError(RateLimitError):
    """Raised when a request exceeds its rate-limit policy.

    Carries the retry hint and the full set of rate-limit response headers so
    the HTTP layer can render a complete 429 without recomputing anything.

    Attributes:
        retry_after_seconds (int): Seconds the client should wait.
        headers (Dict[str, str]): `X-RateLimit-*` and `Retry-After` headers.
    """

    def __init__(
        self,
        retry_after_seconds: int,
        headers: Optional[Mapping[str, str]] = None,
        message: str | None = None,
        code: str = "rate_limit_exceeded",
    ):
        super().__init__(message, code)
        self.retry_after_seconds = retry_after_seconds
        self.headers: Dict[str, str] = dict(headers or {})
        self.headers.setdefault("Retry-After", str(retry_after_seconds))


class StoreUnavailableError(GateCacheError):
    """Raised when an operation strictly requires the shared store.

    Request-path components never raise this; they fail open. It maps to a
    `503 Service Unavailable` HTTP status.
    """

    def __init__(self, message: str = "Shared store is unavailable", code: str = "store_unavailable"):
        super().__init__(message, code)


# ---------------------------------------------------------------------------
# Contract errors (misconfiguration, map to 500 Internal Server Error)
# ---------------------------------------------------------------------------


class ContractError(GateCacheError):
    """Raised for programming or configuration mistakes.

    These indicate misuse of the API rather than runtime load and are never
    recovered locally.
    """

    def __init__(self, message: str, code: str = "contract_error"):
        super().__init__(message, code)


class InvalidRateLimitConfigError(ContractError):
    """Raised when a rate-limit policy is constructed with invalid values."""

    def __init__(self, message: str, code: str = "invalid_rate_limit_config"):
        super().__init__(message, code)


class IdentityRequiredError(ContractError):
    """Raised when an identity-scoped limiter runs without a resolvable identity.

    Admin routes must sit behind authentication; reaching the admin limiter
    anonymously means the route was wired incorrectly.
    """

    def __init__(
        self,
        message: str = "An authenticated identity is required for this rate limit",
        code: str = "identity_required",
    ):
        super().__init__(message, code)


# ---------------------------------------------------------------------------
# Cache warming errors
# ---------------------------------------------------------------------------


class CacheWriteError(GateCacheError):
    """Raised inside a warming task when the cache refuses a write."""

    def __init__(self, message: str, code: str = "cache_write_error"):
        super().__init__(message, code)


class DataSourceError(GateCacheError):
    """Raised when the warming data source cannot be read.

    Maps to a `502 Bad Gateway` when it escapes to the HTTP layer.
    """

    def __init__(self, message: str, code: str = "data_source_error"):
        super().__init__(message, code)
