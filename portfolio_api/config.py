"""
Configuration and settings for the portfolio API.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "change-me"


class Settings(BaseSettings):
    """Environment-backed settings, loaded once and never mutated."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", frozen=True
    )

    api_prefix: str = Field(default="/api")

    # Database (Postgres expected)
    database_url: Optional[str] = Field(default=None)
    # Encrypt without verifying the server certificate (managed Postgres hosts).
    database_ssl: bool = Field(default=False)
    use_in_memory_backends: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "PORTFOLIO_USE_IN_MEMORY_BACKENDS", "use_in_memory_backends"
        ),
    )
    storage_timeout_seconds: float = Field(default=5.0, gt=0)

    # The single admin account
    admin_username: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("USER_NAME", "admin_username")
    )
    admin_password: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("USER_PASSWORD", "admin_password"),
    )

    # Token signing
    jwt_secret: str = Field(default=DEFAULT_JWT_SECRET)
    jwt_algorithm: str = Field(default="HS256")
    token_ttl_seconds: int = Field(default=3600, gt=0)

    # HTTP
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    log_level: str = Field(default="INFO")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=4000)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
