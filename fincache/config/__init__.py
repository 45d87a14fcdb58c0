"""Configuration package."""

from fincache.config.settings import (
    AppSettings,
    CacheSettings,
    DashboardSettings,
    LoaderSettings,
    SessionSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "CacheSettings",
    "DashboardSettings",
    "LoaderSettings",
    "SessionSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
