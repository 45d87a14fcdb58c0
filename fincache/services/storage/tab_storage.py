"""
Tab Storage

The key/value store behind the tab-scoped cache: string keys, string
values, not shared with other tabs and gone when the session ends.

DESIGN DECISION: The cache never touches a process-wide singleton.
The storage is injected, so every session (and every test) owns its own.
"""

from abc import ABC, abstractmethod
from typing import Optional

from fincache.services.storage.interface import StorageQuotaExceededError


class TabStorageInterface(ABC):
    """Abstract interface for tab-scoped key/value storage."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """Return the stored value, or None if the key is absent."""
        pass

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """
        Store a value.

        Raises:
            StorageQuotaExceededError: If there is no room for the value
        """
        pass

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Remove a key. Removing an absent key is a no-op."""
        pass

    @abstractmethod
    def keys(self) -> list[str]:
        """Snapshot of every stored key."""
        pass


class InMemoryTabStorage(TabStorageInterface):
    """
    Process-local tab storage.

    Its lifetime is the owning session. ``quota_bytes`` bounds the total
    UTF-8 size of keys plus values, like a browser storage quota.
    """

    def __init__(self, quota_bytes: Optional[int] = None):
        self._items: dict[str, str] = {}
        self.quota_bytes = quota_bytes

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self.quota_bytes is not None:
            current = self.used_bytes() - self._item_size(key, self._items.get(key))
            needed = self._item_size(key, value)
            if current + needed > self.quota_bytes:
                raise StorageQuotaExceededError(
                    f"Storing {key!r} needs {needed} bytes, "
                    f"{self.quota_bytes - current} available"
                )
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)

    def clear(self) -> None:
        self._items.clear()

    def used_bytes(self) -> int:
        return sum(self._item_size(k, v) for k, v in self._items.items())

    @staticmethod
    def _item_size(key: str, value: Optional[str]) -> int:
        if value is None:
            return 0
        return len(key.encode("utf-8")) + len(value.encode("utf-8"))

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        return key in self._items
