"""Services package."""

from fincache.services.storage import (
    AUTH_REQUIRED,
    BackendError,
    BackendResult,
    Collection,
    InMemoryRecordStore,
    InMemoryTabStorage,
    RecordStoreInterface,
    StorageError,
    StorageQuotaExceededError,
    TabStorageInterface,
)

__all__ = [
    "AUTH_REQUIRED",
    "BackendError",
    "BackendResult",
    "Collection",
    "InMemoryRecordStore",
    "InMemoryTabStorage",
    "RecordStoreInterface",
    "StorageError",
    "StorageQuotaExceededError",
    "TabStorageInterface",
]
