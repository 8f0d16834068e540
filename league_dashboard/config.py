"""
Environment-based configuration management
"""

from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

PLACEHOLDER_PREFIXES = ("your_spotify_client", "changeme")


class Settings(BaseSettings):
    """Configuration settings for the league dashboard"""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Service configuration
    service_name: str = "league-dashboard"
    service_version: str = "1.0.0"
    port: int = 3001
    cors_allowed_origins: str = "http://localhost:5173,http://localhost:3000"

    # Document store
    mongodb_url: str = ""
    mongodb_db_name: str = "music_league"

    # Catalog API (client-credentials grant)
    spotify_client_id: str = ""
    spotify_client_secret: str = ""
    catalog_batch_delay: float = Field(default=0.1, ge=0)
    catalog_timeout: float = Field(default=10.0, gt=0)

    # CSV import
    data_dir: str = "data"

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    @property
    def allowed_origins(self) -> List[str]:
        return [origin.strip() for origin in self.cors_allowed_origins.split(",") if origin.strip()]

    def require_database(self) -> str:
        """Return the connection string or fail before any work is attempted"""
        if not self.mongodb_url.strip():
            raise ConfigurationError(
                "MONGODB_URL is not configured. Set it in the environment or .env file"
            )
        return self.mongodb_url

    def require_catalog_credentials(self) -> tuple:
        """Return (client_id, client_secret) or raise ConfigurationError"""
        client_id = self.spotify_client_id.strip()
        client_secret = self.spotify_client_secret.strip()

        if not client_id or not client_secret or _is_placeholder(client_id) or _is_placeholder(client_secret):
            raise ConfigurationError(
                "Spotify credentials not configured. Set SPOTIFY_CLIENT_ID and "
                "SPOTIFY_CLIENT_SECRET in the environment or .env file"
            )
        return client_id, client_secret


def _is_placeholder(value: str) -> bool:
    return value.lower().startswith(PLACEHOLDER_PREFIXES)


@lru_cache()
def get_settings() -> Settings:
    return Settings()
