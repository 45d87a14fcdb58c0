"""
Reference Data Resource

Every lookup table a form needs (categories, transaction types, payment
statuses, icons...), fetched in parallel and cached together. The cache
sub-key is the sorted list of requested tables, so two forms asking
for the same tables in a different order share one entry.

Each table races its own timeout. A table that fails or times out
becomes an empty list; the others still load. An AUTH_REQUIRED answer
from any table fails the whole load.
"""

from typing import TYPE_CHECKING, Any, Iterable, Optional

from pydantic import TypeAdapter

from fincache.audit.logger import ResourceAuditLogger
from fincache.cache.tab_cache import TabScopedCache
from fincache.models.records import ReferenceData, ReferenceItem
from fincache.resources.hydration import AuthRequiredHandler, Resource
from fincache.resources.loader import (
    DEFAULT_TIMEOUT_SECONDS,
    ResourceLoader,
    normalize_categories,
    run_in_parallel,
    with_timeout,
)
from fincache.services.storage.interface import (
    AUTH_REQUIRED,
    BackendResult,
    Collection,
    RecordStoreInterface,
)

if TYPE_CHECKING:
    from fincache.services.session.guard import SessionGuard


REFERENCE_TABLES: dict[str, Collection] = {
    "categories": Collection.CATEGORIES,
    "transaction_types": Collection.TRANSACTION_TYPES,
    "payment_statuses": Collection.PAYMENT_STATUSES,
    "payment_methods": Collection.PAYMENT_METHODS,
    "recurrence_frequencies": Collection.RECURRENCE_FREQUENCIES,
    "icons": Collection.ICONS,
    "account_types": Collection.ACCOUNT_TYPES,
    "card_types": Collection.CARD_TYPES,
    "card_brands": Collection.CARD_BRANDS,
}


def reference_sub_key(tables: Iterable[str]) -> str:
    return "|".join(sorted(set(tables)))


def normalize_reference_data(data: Optional[dict[str, Any]]) -> ReferenceData:
    data = data or {}
    return ReferenceData(
        categories=normalize_categories(data.get("categories")),
        **{
            table: [ReferenceItem.model_validate(row) for row in data.get(table) or []]
            for table in REFERENCE_TABLES
            if table != "categories"
        },
    )


class ReferenceDataResource(Resource[ReferenceData]):
    """
    Usage:
        lookups = ReferenceDataResource(store, cache, tables=["categories", "icons"])
        await lookups.activate()
        lookups.data.icons
    """

    name = "reference_data"

    def __init__(
        self,
        store: RecordStoreInterface,
        cache: TabScopedCache,
        *,
        tables: Optional[Iterable[str]] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session_guard: Optional["SessionGuard"] = None,
        audit: Optional[ResourceAuditLogger] = None,
        on_auth_required: Optional[AuthRequiredHandler] = None,
    ):
        requested = list(dict.fromkeys(tables or REFERENCE_TABLES))
        unknown = [t for t in requested if t not in REFERENCE_TABLES]
        if unknown:
            raise ValueError(
                f"Unknown reference tables {unknown}, expected any of {sorted(REFERENCE_TABLES)}"
            )

        self._store = store
        self.tables = requested
        self.table_timeout = timeout
        loader = ResourceLoader(
            self.name,
            self._fetch_tables,
            normalize_reference_data,
            timeout=None,
            session_check_timeout=timeout,
            session_guard=session_guard,
        )
        super().__init__(
            cache,
            loader,
            TypeAdapter(ReferenceData),
            sub_key=reference_sub_key(requested),
            audit=audit,
            on_auth_required=on_auth_required,
        )

    def empty_value(self) -> ReferenceData:
        return ReferenceData()

    async def _fetch_tables(self) -> BackendResult:
        results = await run_in_parallel(
            with_timeout(
                self._store.list_records(REFERENCE_TABLES[table]),
                self.table_timeout,
                f"Timed out loading reference table {table}",
            )
            for table in self.tables
        )

        data: dict[str, Any] = {}
        for table, result in zip(self.tables, results):
            if result.error is not None:
                if getattr(result.error, "code", None) == AUTH_REQUIRED:
                    return BackendResult.failure(result.error)
                self._logger.warning(
                    "reference_table_failed",
                    table=table,
                    error=str(result.error),
                )
            data[table] = result.data or []

        return BackendResult.success(data)
