"""
Transactions Resource

One resource instance per filter set. Each filter set is cached under
its own sub-key, and any mutation clears every variant.
"""

from typing import Any, Optional

from fincache.cache.tab_cache import TabScopedCache, filters_key
from fincache.models.records import Transaction, TransactionKind
from fincache.resources.collections import CollectionResource
from fincache.resources.loader import normalize_transactions
from fincache.services.storage.interface import Collection, RecordStoreInterface


class TransactionsResource(CollectionResource[Transaction]):
    """
    Usage:
        expenses = TransactionsResource(store, cache, filters={"type_internal_name": "expense"})
        await expenses.activate()
    """

    name = "transactions"
    collection = Collection.TRANSACTIONS
    record_type = Transaction
    normalize = staticmethod(normalize_transactions)

    def __init__(
        self,
        store: RecordStoreInterface,
        cache: TabScopedCache,
        *,
        filters: Optional[dict[str, Any]] = None,
        **kwargs: Any,
    ):
        clean = {k: v for k, v in (filters or {}).items() if v is not None}
        super().__init__(
            store,
            cache,
            filters=clean,
            sub_key=filters_key(clean),
            **kwargs,
        )

    def of_kind(self, kind: TransactionKind) -> list[Transaction]:
        return [t for t in self._data or [] if t.kind is kind]
