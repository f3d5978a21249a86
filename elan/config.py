"""
Application configuration.

Loads settings from environment variables with sensible defaults.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # ==========================================================================
    # Environment
    # ==========================================================================

    environment: str = "development"
    debug: bool = True

    # ==========================================================================
    # API Server
    # ==========================================================================

    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    # Public URL of the web app (used in invitation links)
    app_url: str = "http://localhost:5173"

    # ==========================================================================
    # Storage
    # ==========================================================================

    data_dir: str = "./data"
    media_bucket: str = "media-files"

    # ==========================================================================
    # AWS (email delivery)
    # ==========================================================================

    aws_region: str = "us-east-1"
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    aws_ses_from_email: str = ""

    # ==========================================================================
    # Authentication
    # ==========================================================================

    jwt_secret_key: str = "dev-jwt-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 30
    jwt_refresh_token_expire_days: int = 7

    # Pending invitations expire after this many days
    invitation_expire_days: int = 7

    # ==========================================================================
    # Media compression (serverless function)
    # ==========================================================================

    compression_function_url: str = ""
    compression_api_key: str = ""
    compression_timeout_seconds: float = 30.0
    compression_max_width: int = 1920
    compression_quality: int = 80

    # ==========================================================================
    # Export
    # ==========================================================================

    export_default_template: str = "professional"
    export_templates_dir: str = ""  # Empty means the bundled templates

    # ==========================================================================
    # Optional Services
    # ==========================================================================

    sentry_dsn: str = ""

    # ==========================================================================
    # Helpers
    # ==========================================================================

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def use_aws(self) -> bool:
        """Whether AWS services should be used."""
        return bool(self.aws_access_key_id and self.aws_secret_access_key)

    @property
    def use_compression_function(self) -> bool:
        return bool(self.compression_function_url)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
