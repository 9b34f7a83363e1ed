"""
Configuration Management for Finance Tracker

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from uuid import UUID

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Relational store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    url: str = Field(
        default="sqlite+aiosqlite:///./finance.db",
        description="SQLAlchemy async database URL"
    )
    echo: bool = Field(
        default=False,
        description="Echo emitted SQL to the log"
    )

    @field_validator('url')
    @classmethod
    def validate_async_driver(cls, v: str) -> str:
        """The store runs on SQLAlchemy's asyncio extension."""
        if v.startswith("sqlite://"):
            return v.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return v


class GeminiSettings(BaseSettings):
    """Gemini receipt classifier configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-1.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=1024,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )


class RateLimitSettings(BaseSettings):
    """Token bucket quota applied to transaction creation."""

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    capacity: int = Field(
        default=10,
        ge=1,
        description="Maximum tokens a user can hold"
    )
    refill_rate: int = Field(
        default=10,
        ge=1,
        description="Tokens added every interval"
    )
    interval_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="Length of one refill interval in seconds"
    )


class SeedSettings(BaseSettings):
    """Demo data generator configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SEED_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    account_id: UUID = Field(
        default=UUID("dc4227f5-b672-4c55-b914-fc49e8cbae28"),
        description="Account whose ledger is replaced by the generator"
    )
    user_id: UUID = Field(
        default=UUID("19e4dee2-6682-40d1-9ee1-c6456d32ae3c"),
        description="Owner of the demo account"
    )
    days: int = Field(
        default=90,
        ge=1,
        le=3650,
        description="How many days of history to generate"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Receipt upload limits
    max_upload_size_mb: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Maximum receipt image size in MB"
    )
    supported_receipt_types: str = Field(
        default="image/jpeg,image/png,image/webp,image/heic",
        description="Comma-separated list of accepted receipt MIME types"
    )

    @property
    def supported_types_list(self) -> list[str]:
        """Get supported MIME types as a list."""
        return [t.strip().lower() for t in self.supported_receipt_types.split(",") if t.strip()]

    @property
    def max_upload_size_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: These are loaded lazily to allow partial configuration

    @property
    def database(self) -> DatabaseSettings:
        return DatabaseSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def rate_limit(self) -> RateLimitSettings:
        return RateLimitSettings()

    @property
    def seed(self) -> SeedSettings:
        return SeedSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus a
    `<name>_error` entry for every group that failed to load.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("database", "gemini", "rate_limit", "seed", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
