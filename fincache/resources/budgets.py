"""
Budgets Resource

Budgets of one month, cached under the ``"<year>-<month>"`` sub-key.
Edits are optimistic: a limit change or a removal shows up before the
backend confirms it and is rolled back if the backend refuses. Creates
and month copies reload silently to pick up ``spent_amount``, which the
backend computes.
"""

from decimal import Decimal
from typing import Any

from fincache.cache.tab_cache import TabScopedCache
from fincache.models.aggregates import BudgetTotals
from fincache.models.records import Budget
from fincache.resources.collections import CollectionResource
from fincache.resources.hydration import ResourceResult
from fincache.resources.loader import normalize_budgets
from fincache.resources.mutations import MutationStrategy
from fincache.services.storage.interface import Collection, RecordStoreInterface


def budget_sub_key(year: int, month: int) -> str:
    return f"{year}-{month}"


def budget_totals(budgets: list[Budget]) -> BudgetTotals:
    """Limit, spending and remaining amount over a month's budgets."""
    total_limit = sum((b.limit_amount for b in budgets), Decimal("0"))
    total_spent = sum((b.spent_amount for b in budgets), Decimal("0"))
    return BudgetTotals(
        total_limit=total_limit,
        total_spent=total_spent,
        remaining=total_limit - total_spent,
        percentage=float(total_spent / total_limit * 100) if total_limit > 0 else 0.0,
    )


class BudgetsResource(CollectionResource[Budget]):
    name = "budgets"
    collection = Collection.BUDGETS
    record_type = Budget
    normalize = staticmethod(normalize_budgets)
    default_strategy = MutationStrategy.OPTIMISTIC

    def __init__(
        self,
        store: RecordStoreInterface,
        cache: TabScopedCache,
        year: int,
        month: int,
        **kwargs: Any,
    ):
        self.year = year
        self.month = month
        super().__init__(
            store,
            cache,
            filters={"year": year, "month": month},
            sub_key=budget_sub_key(year, month),
            **kwargs,
        )

    @property
    def totals(self) -> BudgetTotals:
        return budget_totals(self._data or [])

    async def create(self, payload: dict[str, Any]) -> ResourceResult[Any]:
        """Create a budget in this resource's month."""
        return await super().create({"year": self.year, "month": self.month, **payload})

    async def update(self, record_id: Any, changes: dict[str, Any]) -> ResourceResult[Any]:
        """
        Update a budget. Only ``limit_amount`` is applied optimistically;
        every given field is sent to the backend.
        """
        local = {}
        if changes.get("limit_amount") is not None:
            local["limit_amount"] = changes["limit_amount"]

        return await self._mutate(
            "update",
            lambda: self._store.update_record(self.collection, record_id, changes),
            lambda budgets: [
                self._merged(b, local) if b.id == record_id else b
                for b in budgets
            ],
        )

    async def copy_from_month(self, from_year: int, from_month: int) -> ResourceResult[Any]:
        """Copy another month's budgets into this month, then reload."""
        return await self._mutate(
            "copy_from_month",
            lambda: self._store.copy_budgets(from_year, from_month, self.year, self.month),
            silent_reload=True,
        )
