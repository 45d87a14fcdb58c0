"""
Storage Services Package

Provides the record store interface the resources load from, the
tab-scoped key/value storage the cache writes to, and in-memory
implementations of both.
"""

from fincache.services.storage.interface import (
    AUTH_REQUIRED,
    BackendError,
    BackendResult,
    Collection,
    RecordStoreInterface,
    StorageError,
    StorageQuotaExceededError,
)
from fincache.services.storage.memory import InMemoryRecordStore
from fincache.services.storage.tab_storage import (
    InMemoryTabStorage,
    TabStorageInterface,
)

__all__ = [
    # Interfaces
    "RecordStoreInterface",
    "TabStorageInterface",
    # Results and exceptions
    "AUTH_REQUIRED",
    "BackendError",
    "BackendResult",
    "Collection",
    "StorageError",
    "StorageQuotaExceededError",
    # In-memory implementations
    "InMemoryRecordStore",
    "InMemoryTabStorage",
]
