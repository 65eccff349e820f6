"""Configuration Settings for identity-bridge

Manages environment variables and application configuration.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service info
    service_name: str = "identity-bridge"
    environment: str = "development"

    # Identity backend (Identity Toolkit REST API)
    identity_api_key: Optional[str] = None
    identity_toolkit_url: str = "https://identitytoolkit.googleapis.com/v1"
    secure_token_url: str = "https://securetoken.googleapis.com/v1/token"
    request_timeout_seconds: float = 10.0

    # Loopback redirect for browser-based provider sign-in
    oauth_redirect_host: str = "127.0.0.1"
    oauth_redirect_port: int = 8765

    # Google
    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None

    # Apple (client secret is the pre-generated ES256 JWT)
    apple_client_id: Optional[str] = None
    apple_client_secret: Optional[str] = None

    # Facebook
    facebook_client_id: Optional[str] = None
    facebook_client_secret: Optional[str] = None
    facebook_permissions: list[str] = ["public_profile", "email"]

    # Logging
    log_level: str = "INFO"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance

    Returns:
        Settings instance
    """
    return Settings()
