"""
Configuration Management for fincache

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Every component also takes explicit constructor arguments, so the
values below are only defaults - tests never need the environment.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheSettings(BaseSettings):
    """Tab-scoped cache configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FINCACHE_CACHE_",
        extra="ignore"
    )

    default_ttl_seconds: float = Field(
        default=300.0,
        gt=0,
        description="TTL for transactional data (dashboard, transactions, assets, budgets, settings)"
    )
    reference_ttl_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="TTL for rarely changing data (banks, cards, categories, reference data)"
    )
    max_entry_bytes: int = Field(
        default=5 * 1024 * 1024,
        ge=1024,
        description="Serialized entries larger than this are not cached"
    )
    prune_age_seconds: float = Field(
        default=24 * 60 * 60,
        gt=0,
        description="Entries older than this are pruned when storage runs out of quota"
    )


class LoaderSettings(BaseSettings):
    """Resource loader configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FINCACHE_LOADER_",
        extra="ignore"
    )

    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Every fetch races against this timeout"
    )
    dashboard_transaction_limit: int = Field(
        default=500,
        ge=1,
        description="Number of transactions fetched for the dashboard"
    )


class DashboardSettings(BaseSettings):
    """Dashboard metrics configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FINCACHE_DASHBOARD_",
        extra="ignore"
    )

    savings_goal_percent: float = Field(
        default=20.0,
        ge=0.0,
        le=100.0,
        description="Target share of income to save each month"
    )
    month_label_locale: str = Field(
        default="pt-BR",
        description="Locale used for chart month labels"
    )

    @field_validator('month_label_locale')
    @classmethod
    def validate_locale(cls, v: str) -> str:
        """Only locales with a month label table are accepted."""
        # Imported here to keep config importable without the analytics package
        from fincache.analytics.aggregation import MONTH_LABELS

        if v not in MONTH_LABELS:
            raise ValueError(
                f"Unsupported locale {v!r}, expected one of {sorted(MONTH_LABELS)}"
            )
        return v


class SessionSettings(BaseSettings):
    """Authentication session configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FINCACHE_SESSION_",
        extra="ignore"
    )

    auth_cache_ttl_seconds: float = Field(
        default=60.0,
        ge=0,
        description="How long a verified user is trusted before re-checking the session"
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

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for local structured logs"
    )


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

    @property
    def cache(self) -> CacheSettings:
        return CacheSettings()

    @property
    def loader(self) -> LoaderSettings:
        return LoaderSettings()

    @property
    def dashboard(self) -> DashboardSettings:
        return DashboardSettings()

    @property
    def session(self) -> SessionSettings:
        return SessionSettings()

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

    Returns a dict of {setting_name: is_valid}, with a
    "<name>_error" entry for every group that failed.
    """
    results = {}
    settings = get_settings()

    for name in ("cache", "loader", "dashboard", "session", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
