"""Application settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from prophase.auth.models import OAuthConfig
from prophase.auth.oauth import require_absolute_url


class Settings(BaseSettings):
    """Application settings loaded from PROPHASE_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PROPHASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    client_id: str = "desktop_app"
    redirect_uri: str = "myapp://callback"
    auth_endpoint: str = "http://localhost:3000/api/auth/authorization"
    token_endpoint: str = "http://localhost:3000/api/auth/exe-token"

    # Seconds to wait for the browser login to come back
    oauth_timeout: float = 5 * 60.0
    http_timeout: float = 30.0
    verifier_length: int = 128

    # Loopback endpoint that `prophase deeplink` forwards to
    deeplink_host: str = "127.0.0.1"
    deeplink_port: int = 47615
    allowed_schemes: list[str] = ["myapp", "prophase"]

    def oauth_config(self) -> OAuthConfig:
        """Build the OAuth client configuration.

        Raises:
            ConfigurationError: If either endpoint is not an absolute URL.
        """
        return OAuthConfig(
            client_id=self.client_id,
            redirect_uri=self.redirect_uri,
            auth_endpoint=require_absolute_url(self.auth_endpoint, "auth_endpoint"),
            token_endpoint=require_absolute_url(self.token_endpoint, "token_endpoint"),
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
