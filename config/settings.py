"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # SUPABASE
    # ===================
    supabase_url: str = Field(
        ...,
        description="Supabase project URL"
    )
    supabase_key: str = Field(
        ...,
        description="Supabase service or anon key"
    )

    # ===================
    # COLUMN CLASSIFIER (optional)
    # ===================
    anthropic_api_key: Optional[str] = Field(
        None,
        description="Anthropic API key; enables AI column mapping suggestions"
    )
    mapping_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Claude model used to suggest column mappings"
    )
    mapping_max_tokens: int = Field(
        default=2048,
        ge=256,
        le=8192,
        description="Maximum tokens for a mapping suggestion response"
    )

    # ===================
    # UPLOAD PIPELINE
    # ===================
    max_upload_mb: int = Field(
        default=50,
        ge=1,
        le=200,
        description="Maximum accepted file size in MB"
    )
    decode_chunk_size: int = Field(
        default=500,
        ge=10,
        le=50000,
        description="Rows decoded between progress reports"
    )
    validation_chunk_size: int = Field(
        default=200,
        ge=1,
        le=50000,
        description="Rows validated between yields to the event loop"
    )
    upload_batch_size: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Products per bulk insert"
    )
    default_min_stock: int = Field(
        default=5,
        ge=0,
        description="Minimum stock applied when the file has none"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Origins allowed to call the API (JSON list in the environment)"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def classifier_configured(self) -> bool:
        """Check if the AI column classifier can be used."""
        return bool(self.anthropic_api_key)

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If required env vars are missing or invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
