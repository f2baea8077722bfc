"""
Request-level rate limiting.

`RateLimitGuard` applies a `RateLimitOptions` policy to incoming requests. It
can wrap a Starlette-style ``async (request) -> Response`` handler through
`with_rate_limit`, or run as a FastAPI dependency through `rate_limited`.

Every guarded response carries ``X-RateLimit-Limit``, ``X-RateLimit-Remaining``
and ``X-RateLimit-Reset``. Denied requests never reach the handler; they raise
`RateLimitExceededError`, rendered as a 429 with ``Retry-After`` by the
application's exception handlers.
"""

from __future__ import annotations

import functools
import inspect
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, Union

from fastapi import Request, Response
from structlog import get_logger

from gatecache.core.exceptions import IdentityRequiredError, RateLimitExceededError
from gatecache.domain.interfaces import TokenVerifier, ViolationObserver
from gatecache.domain.rate_limiting.entities import RateLimitViolation
from gatecache.domain.rate_limiting.policies import resolve_path_policy, resolve_policy
from gatecache.domain.rate_limiting.services import RateLimiter
from gatecache.domain.rate_limiting.value_objects import RateLimitConfig, RateLimitResult
from gatecache.domain.rate_limiting.violations import RateLimitViolationLog

logger = get_logger(__name__)

UNKNOWN_CLIENT = "unknown"

IdentifierExtractor = Callable[[Request], Union[str, Awaitable[str]]]
UserExtractor = Callable[[Request], Awaitable[Optional[str]]]
Handler = Callable[[Request], Awaitable[Response]]


def get_client_ip(request: Request) -> str:
    """Client address from proxy headers: first ``X-Forwarded-For`` hop, then ``X-Real-IP``."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return UNKNOWN_CLIENT


async def get_user_id_from_request(request: Request, verifier: Optional[TokenVerifier]) -> Optional[str]:
    """
    Resolve the caller's user id from an ``Authorization: Bearer`` header.

    Returns ``None`` for a missing header, an unconfigured verifier or a token
    the verifier rejects, so callers degrade to IP-based limiting.
    """
    auth_header = request.headers.get("authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header[len("Bearer "):].strip()
    if not token or verifier is None:
        return None
    try:
        return await verifier.verify(token)
    except Exception as e:
        logger.debug("bearer_token_rejected", error=str(e))
        return None


@dataclass(frozen=True)
class RateLimitOptions:
    """How one route is limited.

    Attributes:
        config: Policy to enforce. With ``dual_limit_enabled`` it is applied
            to the client IP under ``namespace:ip``.
        identifier_extractor: Identity for single-limit checks.
        dual_limit_extractor: Resolves the user id for the second, user-scoped
            check of a dual limit.
        user_config: Policy for the user-scoped check; defaults to ``config``.
        on_rate_limited: Observer notified of every denial.
    """

    config: RateLimitConfig
    identifier_extractor: IdentifierExtractor = get_client_ip
    dual_limit_extractor: Optional[UserExtractor] = None
    user_config: Optional[RateLimitConfig] = None
    on_rate_limited: Optional[ViolationObserver] = None


OptionsProvider = Union[RateLimitOptions, Callable[[Request], Awaitable[RateLimitOptions]]]


class RateLimitGuard:
    """Applies rate-limit options to requests.

    Args:
        limiter: Sliding-window limiter.
        violations: Log every denial is appended to.
        token_verifier: Auth collaborator used to resolve user ids.
        environment: Selects the multiplier applied to preset policies.
        enabled: When False requests pass through untouched.
    """

    def __init__(
        self,
        limiter: RateLimiter,
        violations: RateLimitViolationLog,
        token_verifier: Optional[TokenVerifier] = None,
        environment: str = "production",
        enabled: bool = True,
        multiplier_override: Optional[int] = None,
    ):
        self.limiter = limiter
        self.violations = violations
        self.token_verifier = token_verifier
        self.environment = environment
        self.enabled = enabled
        self._multiplier_override = multiplier_override

    async def user_id(self, request: Request) -> Optional[str]:
        return await get_user_id_from_request(request, self.token_verifier)

    async def user_or_ip(self, request: Request) -> str:
        return await self.user_id(request) or get_client_ip(request)

    async def _check(self, request: Request, options: RateLimitOptions):
        config = options.config
        if config.dual_limit_enabled and options.dual_limit_extractor is not None:
            identifier = get_client_ip(request)
            checked = config.scoped("ip")
            result = await self.limiter.check_limit(identifier, checked)
            if result.allowed:
                user_id = await options.dual_limit_extractor(request)
                if user_id:
                    identifier = user_id
                    checked = (options.user_config or config).scoped("user")
                    result = await self.limiter.check_limit(identifier, checked)
            return identifier, checked, result

        identifier = options.identifier_extractor(request)
        if inspect.isawaitable(identifier):
            identifier = await identifier
        return identifier, config, await self.limiter.check_limit(identifier, config)

    async def enforce(self, request: Request, options: OptionsProvider) -> Dict[str, str]:
        """
        Check ``request`` against ``options`` and return the headers to attach.

        Raises:
            RateLimitExceededError: The request is over its limit.
            IdentityRequiredError: An identity-scoped preset found no identity.
        """
        if not self.enabled:
            return {}
        if not isinstance(options, RateLimitOptions):
            options = await options(request)

        identifier, checked, result = await self._check(request, options)
        headers = result.to_http_headers()
        if result.allowed:
            return headers

        retry_after = result.retry_after_seconds or checked.window_seconds
        headers["Retry-After"] = str(retry_after)
        violation = RateLimitViolation(
            identifier=identifier,
            endpoint=request.url.path,
            limit=result.limit,
            window_ms=checked.window_ms,
            headers=dict(headers),
        )
        self.violations.record(violation)
        logger.warning(
            "request_rate_limited",
            identifier=identifier,
            path=request.url.path,
            namespace=checked.key_namespace,
            retry_after=retry_after,
        )
        if options.on_rate_limited is not None:
            try:
                await options.on_rate_limited.notify(violation)
            except Exception as e:
                logger.error("rate_limited_observer_failed", error=str(e))
        raise RateLimitExceededError(retry_after, headers)

    def with_rate_limit(self, handler: Handler, options: OptionsProvider) -> Handler:
        """Wrap a Starlette-style handler so it only runs within its limit."""

        @functools.wraps(handler)
        async def wrapped(request: Request) -> Response:
            headers = await self.enforce(request, options)
            response = await handler(request)
            response.headers.update(headers)
            return response

        return wrapped

    # -- presets -----------------------------------------------------------

    def _policy(self, name: str) -> RateLimitConfig:
        return resolve_policy(name, self.environment, self._multiplier_override)

    def public(self) -> RateLimitOptions:
        return RateLimitOptions(config=self._policy("public"))

    def authenticated(self, user_id: str) -> RateLimitOptions:
        return RateLimitOptions(config=self._policy("authenticated"), identifier_extractor=lambda _: user_id)

    def booking(self, user_id: Optional[str]) -> RateLimitOptions:
        return RateLimitOptions(
            config=self._policy("booking"),
            identifier_extractor=lambda request: user_id or get_client_ip(request),
        )

    def payment(self, user_config: Optional[RateLimitConfig] = None) -> RateLimitOptions:
        """Per-IP limit plus a per-user limit for authenticated callers."""
        return RateLimitOptions(
            config=self._policy("payment"),
            dual_limit_extractor=self.user_id,
            user_config=user_config,
        )

    def upload(self) -> RateLimitOptions:
        return RateLimitOptions(config=self._policy("upload"), identifier_extractor=self.user_or_ip)

    def webhook(self) -> RateLimitOptions:
        return RateLimitOptions(config=self._policy("webhook"))

    def admin(self) -> RateLimitOptions:
        """Per-admin limit; reaching it without an identity is a wiring error."""
        async def admin_identity(request: Request) -> str:
            user_id = await self.user_id(request)
            if not user_id:
                raise IdentityRequiredError()
            return user_id
        return RateLimitOptions(config=self._policy("admin"), identifier_extractor=admin_identity)

    async def dynamic(self, request: Request) -> RateLimitOptions:
        """Authenticated limit keyed by user when a token resolves, else public by IP."""
        user_id = await self.user_id(request)
        if user_id:
            return self.authenticated(user_id)
        return self.public()

    async def by_path(self, request: Request) -> RateLimitOptions:
        """Endpoint policy looked up from the request path, keyed by user or IP."""
        config = resolve_path_policy(request.url.path, self.environment, self._multiplier_override)
        return RateLimitOptions(config=config, identifier_extractor=self.user_or_ip)


def rate_limited(preset: Callable[[RateLimitGuard], OptionsProvider]):
    """
    FastAPI dependency enforcing a guard preset on a route.

    The guard is read from ``app.state.rate_limit_guard``; rate-limit headers
    are copied onto the route's response.

    Example:
        ``@router.get("/", dependencies=[Depends(rate_limited(RateLimitGuard.admin))])``
    """
    async def dependency(request: Request, response: Response) -> None:
        guard: RateLimitGuard = request.app.state.rate_limit_guard
        headers = await guard.enforce(request, preset(guard))
        response.headers.update(headers)

    return dependency
