"""
Tab-Scoped Cache

A TTL cache over tab storage, namespaced per resource and optionally
sub-keyed per filter set. Implements the read side of
stale-while-revalidate: ``get`` returns the data together with an
``is_stale`` flag and the caller decides whether to revalidate.

DESIGN DECISION: The cache is an optimization, never a source of truth.
- Corrupt or unreadable entries are a miss
- Write failures are logged and swallowed
- The system stays correct with the cache permanently empty

Entries are stored as JSON ``{"data": ..., "timestamp": <epoch ms>}``.
The timestamp is set at write time and never touched again.
"""

import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional
from urllib.parse import quote

import structlog
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt

from fincache.services.storage.interface import StorageQuotaExceededError
from fincache.services.storage.tab_storage import TabStorageInterface


DEFAULT_TTL_SECONDS = 5 * 60
REFERENCE_TTL_SECONDS = 60 * 60
MAX_ENTRY_BYTES = 5 * 1024 * 1024
PRUNE_AGE_SECONDS = 24 * 60 * 60

# Sub-key used for an empty filter set. Never collides with a
# non-empty filters_key, which always contains ":".
ALL_RECORDS_KEY = "all"

_MISSING = object()

Clock = Callable[[], int]


def epoch_millis() -> int:
    """Current time as integer epoch milliseconds."""
    return int(time.time() * 1000)


def _format_filter_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def filters_key(filters: Optional[Mapping[str, Any]]) -> str:
    """
    Deterministic sub-key for a filter set.

    Keys are sorted, None values dropped, and both keys and values
    percent-escaped before being joined as ``key:value|key:value``, so
    property order never matters and distinct filter sets never collide.
    """
    parts = [
        f"{quote(str(key), safe='')}:{quote(_format_filter_value(value), safe='')}"
        for key, value in sorted(filters.items() if filters else [], key=lambda kv: str(kv[0]))
        if value is not None
    ]
    return "|".join(parts) if parts else ALL_RECORDS_KEY


@dataclass(frozen=True)
class CachedValue:
    """A cache hit."""
    data: Any
    is_stale: bool
    timestamp: int


class TabScopedCache:
    """
    TTL cache for one resource namespace.

    Usage:
        cache = TabScopedCache(storage, "banks_cache", ttl_seconds=3600)
        cache.set([{"id": 1}])
        cache.get()  # CachedValue(data=[{"id": 1}], is_stale=False, ...)

        transactions = TabScopedCache(storage, "transactions_cache", use_keys=True)
        transactions.set(filters_key({"limit": 500}), rows)
        transactions.clear_all()  # drops every filter variant
    """

    def __init__(
        self,
        storage: TabStorageInterface,
        prefix: str,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        use_keys: bool = False,
        max_entry_bytes: int = MAX_ENTRY_BYTES,
        prune_age_seconds: float = PRUNE_AGE_SECONDS,
        clock: Optional[Clock] = None,
    ):
        self._storage = storage
        self.prefix = prefix
        self.ttl_ms = int(ttl_seconds * 1000)
        self.use_keys = use_keys
        self.max_entry_bytes = max_entry_bytes
        self.prune_age_ms = int(prune_age_seconds * 1000)
        self._clock = clock or epoch_millis
        self._logger = structlog.get_logger(__name__).bind(cache=prefix)

    def key_for(self, sub_key: Optional[str] = None) -> str:
        """Storage key of an entry."""
        if self.use_keys and sub_key is not None:
            return f"{self.prefix}:{sub_key}"
        return self.prefix

    def _owns(self, key: str) -> bool:
        return key == self.prefix or key.startswith(f"{self.prefix}:")

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get(self, sub_key: Optional[str] = None) -> Optional[CachedValue]:
        """
        Read an entry.

        Returns None when the entry is missing, unreadable or malformed.
        An entry is stale from the moment its age reaches the TTL.
        """
        key = self.key_for(sub_key)
        try:
            raw = self._storage.get_item(key)
        except Exception as e:
            self._logger.warning("cache_read_failed", key=key, error=str(e))
            return None

        if raw is None:
            return None

        entry = self._parse(raw)
        if entry is None:
            self._logger.warning("cache_entry_corrupt", key=key)
            return None

        data, timestamp = entry
        age = self._clock() - timestamp
        return CachedValue(data=data, is_stale=age >= self.ttl_ms, timestamp=timestamp)

    def has_fresh(self, sub_key: Optional[str] = None) -> bool:
        cached = self.get(sub_key)
        return cached is not None and not cached.is_stale

    @staticmethod
    def _parse(raw: str) -> Optional[tuple[Any, int]]:
        try:
            entry = json.loads(raw)
        except (TypeError, ValueError):
            return None
        if not isinstance(entry, dict) or "data" not in entry:
            return None
        timestamp = entry.get("timestamp")
        if isinstance(timestamp, bool) or not isinstance(timestamp, int):
            return None
        return entry["data"], timestamp

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def set(self, sub_key_or_data: Any, data: Any = _MISSING) -> bool:
        """
        Write an entry.

        ``set(data)`` writes the namespace entry; ``set(sub_key, data)``
        writes a sub-keyed entry. Data must be JSON serializable.

        Returns True if the entry was stored. Never raises.
        """
        if data is _MISSING:
            sub_key, payload = None, sub_key_or_data
        else:
            sub_key, payload = sub_key_or_data, data

        key = self.key_for(sub_key)
        try:
            serialized = json.dumps(
                {"data": payload, "timestamp": self._clock()},
                separators=(",", ":"),
                ensure_ascii=False,
            )
        except (TypeError, ValueError) as e:
            self._logger.error("cache_serialize_failed", key=key, error=str(e))
            return False

        size = len(serialized.encode("utf-8"))
        if size > self.max_entry_bytes:
            self._logger.warning(
                "cache_entry_too_large",
                key=key,
                size_bytes=size,
                max_bytes=self.max_entry_bytes,
            )
            return False

        # On quota exhaustion prune old entries and retry exactly once
        retrying = Retrying(
            stop=stop_after_attempt(2),
            retry=retry_if_exception_type(StorageQuotaExceededError),
            before_sleep=lambda _state: self.prune_old_entries(),
            reraise=True,
        )
        try:
            retrying(self._storage.set_item, key, serialized)
        except Exception as e:
            self._logger.error("cache_write_failed", key=key, error=str(e))
            return False

        return True

    def prune_old_entries(self) -> int:
        """
        Remove entries older than the prune age, or unreadable, across
        the whole tab storage. Returns the number of removed keys.
        """
        now = self._clock()
        removed = 0
        try:
            for key in self._storage.keys():
                raw = self._storage.get_item(key)
                if raw is None:
                    continue
                entry = self._parse(raw)
                if entry is None or now - entry[1] > self.prune_age_ms:
                    self._storage.remove_item(key)
                    removed += 1
        except Exception as e:
            self._logger.error("cache_prune_failed", error=str(e))

        self._logger.warning("cache_pruned", removed=removed)
        return removed

    def clear(self, sub_key: Optional[str] = None) -> None:
        """Remove one entry."""
        key = self.key_for(sub_key)
        try:
            self._storage.remove_item(key)
        except Exception as e:
            self._logger.warning("cache_clear_failed", key=key, error=str(e))

    def clear_all(self) -> None:
        """Remove the namespace entry and every sub-keyed variant."""
        try:
            for key in [k for k in self._storage.keys() if self._owns(k)]:
                self._storage.remove_item(key)
        except Exception as e:
            self._logger.warning("cache_clear_failed", key=self.prefix, error=str(e))

    # -------------------------------------------------------------------------
    # Raw access for rollback
    # -------------------------------------------------------------------------

    def snapshot(self, sub_key: Optional[str] = None) -> Optional[str]:
        """The serialized entry exactly as stored, or None."""
        try:
            return self._storage.get_item(self.key_for(sub_key))
        except Exception as e:
            self._logger.warning("cache_read_failed", key=self.key_for(sub_key), error=str(e))
            return None

    def restore(self, sub_key: Optional[str], raw: Optional[str]) -> None:
        """Put back a snapshot byte for byte (None removes the entry)."""
        key = self.key_for(sub_key)
        try:
            if raw is None:
                self._storage.remove_item(key)
            else:
                self._storage.set_item(key, raw)
        except Exception as e:
            self._logger.error("cache_restore_failed", key=key, error=str(e))

    def __repr__(self) -> str:
        return (
            f"TabScopedCache(prefix={self.prefix!r}, ttl_ms={self.ttl_ms}, "
            f"use_keys={self.use_keys})"
        )
