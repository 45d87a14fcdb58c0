"""
Abstract Record Store Interface

DESIGN DECISION: The hosted data backend is an injected dependency.
This allows us to:
1. Run resources against an in-memory store in tests
2. Swap the hosted backend without touching resource code
3. Inject failures and latency to exercise timeouts and rollbacks

Every call returns a BackendResult instead of raising for expected
failures (not found, validation, session expired). The only error code
fincache inspects is AUTH_REQUIRED.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


AUTH_REQUIRED = "AUTH_REQUIRED"


class Collection(str, Enum):
    """Backend collections a resource can list and mutate."""
    TRANSACTIONS = "transactions"
    ASSETS = "assets"
    BANKS = "banks"
    CARDS = "cards"
    CATEGORIES = "categories"
    BUDGETS = "budgets"
    ACCOUNT_MEMBERS = "account_members"

    # Lookup tables (read only)
    TRANSACTION_TYPES = "transaction_types"
    PAYMENT_STATUSES = "payment_statuses"
    PAYMENT_METHODS = "payment_methods"
    RECURRENCE_FREQUENCIES = "recurrence_frequencies"
    ICONS = "icons"
    ACCOUNT_TYPES = "account_types"
    CARD_TYPES = "card_types"
    CARD_BRANDS = "card_brands"


class BackendError(Exception):
    """
    An error reported by the backend inside a BackendResult.

    ``code`` is machine readable when the backend provides one.
    """

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code

    @property
    def is_auth_required(self) -> bool:
        return self.code == AUTH_REQUIRED

    @classmethod
    def auth_required(cls, message: str = "Authentication required") -> "BackendError":
        return cls(message, code=AUTH_REQUIRED)


@dataclass
class BackendResult:
    """The ``{data, error}`` pair every backend call returns."""
    data: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, data: Any) -> "BackendResult":
        return cls(data=data, error=None)

    @classmethod
    def failure(cls, error: BaseException) -> "BackendResult":
        return cls(data=None, error=error)


class RecordStoreInterface(ABC):
    """
    Abstract interface for the hosted record backend.

    Any backend client (hosted REST API, in-memory fake, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def list_records(
        self,
        collection: Collection,
        filters: Optional[dict[str, Any]] = None,
    ) -> BackendResult:
        """
        List records of a collection.

        Args:
            collection: Collection to read
            filters: Optional equality filters plus ``limit``, ``offset``,
                     ``date_from`` and ``date_to``

        Returns:
            BackendResult with a list of raw record dicts
        """
        pass

    @abstractmethod
    async def create_record(
        self,
        collection: Collection,
        payload: dict[str, Any],
    ) -> BackendResult:
        """
        Create a record.

        Returns:
            BackendResult with the created record, including
            server-generated fields
        """
        pass

    @abstractmethod
    async def update_record(
        self,
        collection: Collection,
        record_id: Any,
        payload: dict[str, Any],
    ) -> BackendResult:
        """
        Update fields of an existing record.

        Returns:
            BackendResult with the updated record
        """
        pass

    @abstractmethod
    async def delete_record(
        self,
        collection: Collection,
        record_id: Any,
    ) -> BackendResult:
        """Delete a record by ID."""
        pass

    @abstractmethod
    async def copy_budgets(
        self,
        from_year: int,
        from_month: int,
        to_year: int,
        to_month: int,
    ) -> BackendResult:
        """
        Copy every budget of one month into another.

        Categories that already have a budget in the target month are skipped.

        Returns:
            BackendResult with the list of created budgets
        """
        pass

    @abstractmethod
    async def get_user_settings(self) -> BackendResult:
        """
        Get profile, preferences and members of the signed-in account.
        """
        pass

    @abstractmethod
    async def update_user_settings(
        self,
        section: str,
        updates: dict[str, Any],
    ) -> BackendResult:
        """
        Update one settings section ("personal_info" or "preferences").
        """
        pass

    @abstractmethod
    async def reset_account(self) -> BackendResult:
        """Delete every user-owned record of the account."""
        pass


class StorageError(Exception):
    """Base exception for tab storage operations."""
    pass


class StorageQuotaExceededError(StorageError):
    """The tab storage has no room left for a write."""
    pass
