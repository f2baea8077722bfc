"""JWT verification for identity-scoped rate limits."""

from typing import Optional

from jose import JWTError, jwt
from structlog import get_logger

from gatecache.core.config.settings import Settings, settings as default_settings
from gatecache.domain.interfaces import TokenVerifier

logger = get_logger(__name__)


class JWTTokenVerifier(TokenVerifier):
    """Decodes bearer tokens with python-jose and returns their ``sub`` claim.

    Raises `JWTError` for any invalid, expired or subject-less token, and
    `RuntimeError` when no signing key is configured.
    """

    def __init__(self, config: Optional[Settings] = None):
        self._settings = config or default_settings

    async def verify(self, token: str) -> str:
        if not self._settings.jwt_configured:
            raise RuntimeError("JWT_SECRET_KEY is not configured")

        options = {"verify_aud": bool(self._settings.JWT_AUDIENCE)}
        payload = jwt.decode(
            token,
            self._settings.JWT_SECRET_KEY.get_secret_value(),
            algorithms=[self._settings.JWT_ALGORITHM],
            audience=self._settings.JWT_AUDIENCE or None,
            options=options,
        )
        subject = payload.get("sub")
        if not subject:
            raise JWTError("Token has no subject")
        return str(subject)
