"""Configuration package."""

from finance_tracker.config.settings import (
    AppSettings,
    DatabaseSettings,
    GeminiSettings,
    RateLimitSettings,
    SeedSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "DatabaseSettings",
    "GeminiSettings",
    "RateLimitSettings",
    "SeedSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
