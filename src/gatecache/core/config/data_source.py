"""
Warming data source settings.
"""
from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings


class DataSourceSettings(BaseSettings):
    """
    Connection settings for the rental database's REST (PostgREST) interface,
    which the cache warmer reads from.

    Warming is disabled when either value is missing.

    Security Note:
        - SUPABASE_SERVICE_ROLE_KEY bypasses row-level security; keep it
          server-side only and never log it.
    """
    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_ROLE_KEY: SecretStr = SecretStr("")
    DATA_SOURCE_TIMEOUT: float = Field(default=10.0, gt=0)

    @property
    def data_source_configured(self) -> bool:
        return bool(self.SUPABASE_URL and self.SUPABASE_SERVICE_ROLE_KEY.get_secret_value())
