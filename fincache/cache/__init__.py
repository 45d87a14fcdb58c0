"""Tab-scoped cache package."""

from fincache.cache.tab_cache import (
    ALL_RECORDS_KEY,
    DEFAULT_TTL_SECONDS,
    REFERENCE_TTL_SECONDS,
    CachedValue,
    TabScopedCache,
    epoch_millis,
    filters_key,
)

__all__ = [
    "ALL_RECORDS_KEY",
    "DEFAULT_TTL_SECONDS",
    "REFERENCE_TTL_SECONDS",
    "CachedValue",
    "TabScopedCache",
    "epoch_millis",
    "filters_key",
]
