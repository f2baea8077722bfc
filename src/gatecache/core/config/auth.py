"""Authentication settings used to resolve request identities.
"""

import logging

from pydantic import SecretStr
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class AuthSettings(BaseSettings):
    """Defines the JWT configuration used to verify bearer tokens.

    Tokens are only verified to extract a user identifier for identity-scoped
    rate limits; issuing tokens is the auth service's responsibility.

    Security Note:
        - JWT_SECRET_KEY must be securely stored and rotated regularly to prevent
          token forgery (OWASP A02:2021 - Cryptographic Failures).
    """

    JWT_SECRET_KEY: SecretStr = SecretStr("")
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str = ""

    @property
    def jwt_configured(self) -> bool:
        return bool(self.JWT_SECRET_KEY.get_secret_value())
