"""
In-Memory Record Store

A complete RecordStoreInterface kept in process memory. Used for offline
work and throughout the test suite.

Records are stored in the backend's raw shape (for example transactions
may carry ``transaction_date`` instead of ``date``), so the loaders'
normalization runs against realistic input.

Failure injection:
- ``fail(operation, error)`` makes the next matching call fail. A
  BackendError is returned inside the result; any other exception is raised.
- ``sign_out()`` makes every call report AUTH_REQUIRED.
- ``latency`` delays every call, to exercise timeouts and races.
"""

import asyncio
import copy
from itertools import count
from typing import Any, Optional

import structlog

from fincache.services.storage.interface import (
    BackendError,
    BackendResult,
    Collection,
    RecordStoreInterface,
)


DEFAULT_LIST_LIMIT = 500

# Keys of ``filters`` that are not plain equality filters
_PAGING_KEYS = {"limit", "offset", "date_from", "date_to"}

_DATED_FIELDS = {
    Collection.TRANSACTIONS: ("transaction_date", "date"),
    Collection.ASSETS: ("valuation_date", "date"),
}


def _record_date(collection: Collection, record: dict) -> Optional[str]:
    for field in _DATED_FIELDS.get(collection, ("date",)):
        if record.get(field):
            return str(record[field])
    return None


class InMemoryRecordStore(RecordStoreInterface):
    """
    In-memory backend with failure injection.

    Usage:
        store = InMemoryRecordStore({"banks": [{"id": 1, "name": "Nubank"}]})
        store.fail("list", BackendError("boom"), collection=Collection.BANKS)
    """

    def __init__(
        self,
        records: Optional[dict[str, list[dict]]] = None,
        user_settings: Optional[dict[str, Any]] = None,
        latency: float = 0.0,
    ):
        self._records: dict[Collection, list[dict]] = {c: [] for c in Collection}
        for name, rows in (records or {}).items():
            self._records[Collection(name)] = [copy.deepcopy(r) for r in rows]

        self._settings: dict[str, Any] = copy.deepcopy(user_settings or {})
        self._ids = count(self._max_id() + 1)
        self._failures: list[tuple[str, Optional[Collection], BaseException]] = []
        self.latency = latency
        self.signed_in = True
        self.calls: list[tuple[str, Optional[str]]] = []
        self._logger = structlog.get_logger(__name__)

    def _max_id(self) -> int:
        ids = [
            r["id"] for rows in self._records.values() for r in rows
            if isinstance(r.get("id"), int)
        ]
        return max(ids, default=0)

    # -------------------------------------------------------------------------
    # Test controls
    # -------------------------------------------------------------------------

    def fail(
        self,
        operation: str,
        error: BaseException,
        collection: Optional[Collection] = None,
    ) -> None:
        """
        Make the next matching call fail.

        ``operation`` is one of "list", "create", "update", "delete",
        "copy_budgets", "get_settings", "update_settings", "reset".
        """
        self._failures.append((operation, collection, error))

    def sign_out(self) -> None:
        self.signed_in = False

    def sign_in(self) -> None:
        self.signed_in = True

    def records(self, collection: Collection) -> list[dict]:
        """Copy of the raw records of a collection."""
        return copy.deepcopy(self._records[collection])

    def call_count(self, operation: str, collection: Optional[Collection] = None) -> int:
        name = collection.value if collection is not None else None
        return sum(
            1 for op, coll in self.calls
            if op == operation and (collection is None or coll == name)
        )

    async def _enter(
        self,
        operation: str,
        collection: Optional[Collection] = None,
    ) -> Optional[BackendResult]:
        """Record the call, apply latency and injected failures."""
        self.calls.append((operation, collection.value if collection else None))

        if self.latency:
            await asyncio.sleep(self.latency)

        if not self.signed_in:
            return BackendResult.failure(BackendError.auth_required())

        for i, (op, coll, error) in enumerate(self._failures):
            if op == operation and (coll is None or coll == collection):
                del self._failures[i]
                self._logger.debug(
                    "injected_failure",
                    operation=operation,
                    collection=collection.value if collection else None,
                    error=str(error),
                )
                if isinstance(error, BackendError):
                    return BackendResult.failure(error)
                raise error

        return None

    def _find(self, collection: Collection, record_id: Any) -> Optional[dict]:
        for record in self._records[collection]:
            if record.get("id") == record_id:
                return record
        return None

    @staticmethod
    def _not_found(collection: Collection, record_id: Any) -> BackendResult:
        return BackendResult.failure(
            BackendError(f"{collection.value} record {record_id!r} not found", code="NOT_FOUND")
        )

    # -------------------------------------------------------------------------
    # RecordStoreInterface
    # -------------------------------------------------------------------------

    async def list_records(
        self,
        collection: Collection,
        filters: Optional[dict[str, Any]] = None,
    ) -> BackendResult:
        failure = await self._enter("list", collection)
        if failure:
            return failure

        filters = {k: v for k, v in (filters or {}).items() if v is not None}
        rows = self._records[collection]

        for key, value in filters.items():
            if key in _PAGING_KEYS:
                continue
            rows = [r for r in rows if r.get(key) == value]

        if "date_from" in filters:
            rows = [r for r in rows if (_record_date(collection, r) or "") >= filters["date_from"]]
        if "date_to" in filters:
            rows = [r for r in rows if (_record_date(collection, r) or "") <= filters["date_to"]]

        if collection is Collection.TRANSACTIONS:
            rows = sorted(rows, key=lambda r: _record_date(collection, r) or "", reverse=True)
            limit = int(filters.get("limit") or DEFAULT_LIST_LIMIT)
            offset = int(filters.get("offset") or 0)
            rows = rows[offset:offset + limit]
        elif "limit" in filters:
            offset = int(filters.get("offset") or 0)
            rows = rows[offset:offset + int(filters["limit"])]

        return BackendResult.success(copy.deepcopy(rows))

    async def create_record(
        self,
        collection: Collection,
        payload: dict[str, Any],
    ) -> BackendResult:
        failure = await self._enter("create", collection)
        if failure:
            return failure

        record = copy.deepcopy(payload)
        record.setdefault("id", next(self._ids))
        if collection is Collection.BUDGETS:
            # Computed server side
            record.setdefault("spent_amount", 0)
        self._records[collection].append(record)
        return BackendResult.success(copy.deepcopy(record))

    async def update_record(
        self,
        collection: Collection,
        record_id: Any,
        payload: dict[str, Any],
    ) -> BackendResult:
        failure = await self._enter("update", collection)
        if failure:
            return failure

        record = self._find(collection, record_id)
        if record is None:
            return self._not_found(collection, record_id)
        record.update(copy.deepcopy(payload))
        return BackendResult.success(copy.deepcopy(record))

    async def delete_record(
        self,
        collection: Collection,
        record_id: Any,
    ) -> BackendResult:
        failure = await self._enter("delete", collection)
        if failure:
            return failure

        record = self._find(collection, record_id)
        if record is None:
            return self._not_found(collection, record_id)
        self._records[collection].remove(record)
        return BackendResult.success({"id": record_id})

    async def copy_budgets(
        self,
        from_year: int,
        from_month: int,
        to_year: int,
        to_month: int,
    ) -> BackendResult:
        failure = await self._enter("copy_budgets", Collection.BUDGETS)
        if failure:
            return failure

        budgets = self._records[Collection.BUDGETS]
        existing = {
            b.get("category_id") for b in budgets
            if b.get("year") == to_year and b.get("month") == to_month
        }
        created = []
        for source in [b for b in budgets if b.get("year") == from_year and b.get("month") == from_month]:
            if source.get("category_id") in existing:
                continue
            record = copy.deepcopy(source)
            record.update({
                "id": next(self._ids),
                "year": to_year,
                "month": to_month,
                "spent_amount": 0,
            })
            budgets.append(record)
            created.append(copy.deepcopy(record))

        return BackendResult.success(created)

    async def get_user_settings(self) -> BackendResult:
        failure = await self._enter("get_settings")
        if failure:
            return failure

        settings = copy.deepcopy(self._settings)
        settings["members"] = copy.deepcopy(self._records[Collection.ACCOUNT_MEMBERS])
        return BackendResult.success(settings)

    async def update_user_settings(
        self,
        section: str,
        updates: dict[str, Any],
    ) -> BackendResult:
        failure = await self._enter("update_settings")
        if failure:
            return failure

        if section not in ("personal_info", "preferences"):
            return BackendResult.failure(
                BackendError(f"Unknown settings section {section!r}", code="INVALID_SECTION")
            )
        self._settings.update(copy.deepcopy(updates))
        return BackendResult.success(copy.deepcopy(self._settings))

    async def reset_account(self) -> BackendResult:
        failure = await self._enter("reset")
        if failure:
            return failure

        for collection in (
            Collection.TRANSACTIONS,
            Collection.ASSETS,
            Collection.BANKS,
            Collection.CARDS,
            Collection.CATEGORIES,
            Collection.BUDGETS,
        ):
            self._records[collection] = []
        return BackendResult.success({"reset": True})
