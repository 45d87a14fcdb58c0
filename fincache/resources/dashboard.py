"""
Dashboard Resource

Loads transactions, categories and assets in parallel under a single
timeout, caches the three lists together, and derives the dashboard
view (metrics, category breakdowns, chart series) from them.

Partial failures: an AUTH_REQUIRED answer from any source fails the
whole load as authentication-required. Any other per-source error is
logged and that source resolves to an empty list.
"""

from datetime import date
from typing import TYPE_CHECKING, Any, Optional

from pydantic import TypeAdapter

from fincache.analytics.aggregation import (
    aggregate_transactions,
    build_chart_series,
    current_month_key,
)
from fincache.analytics.metrics import DerivedMetricsAdapter
from fincache.audit.logger import ResourceAuditLogger
from fincache.cache.tab_cache import TabScopedCache
from fincache.models.aggregates import CategoryData, DashboardView
from fincache.models.records import Category, DashboardSnapshot
from fincache.resources.hydration import AuthRequiredHandler, Resource
from fincache.resources.loader import (
    DEFAULT_TIMEOUT_SECONDS,
    ResourceLoader,
    normalize_assets,
    normalize_transactions,
    run_in_parallel,
)
from fincache.services.storage.interface import (
    AUTH_REQUIRED,
    BackendResult,
    Collection,
    RecordStoreInterface,
)

if TYPE_CHECKING:
    from fincache.services.session.guard import SessionGuard


DASHBOARD_TRANSACTION_LIMIT = 500

_SOURCES = ("transactions", "categories", "assets")


def normalize_dashboard(data: Optional[dict[str, Any]]) -> DashboardSnapshot:
    # Categories keep their raw colors and icons so a transaction's own
    # category_color / category_icon can still win over the kind default
    data = data or {}
    return DashboardSnapshot(
        transactions=normalize_transactions(data.get("transactions")),
        categories=[Category.model_validate(row) for row in data.get("categories") or []],
        assets=normalize_assets(data.get("assets")),
    )


class DashboardResource(Resource[DashboardSnapshot]):
    """
    Usage:
        dashboard = DashboardResource(store, cache)
        await dashboard.activate()
        view = dashboard.view()
        view.metrics.health_score.band
    """

    name = "dashboard"

    def __init__(
        self,
        store: RecordStoreInterface,
        cache: TabScopedCache,
        *,
        metrics: Optional[DerivedMetricsAdapter] = None,
        transaction_limit: int = DASHBOARD_TRANSACTION_LIMIT,
        month_label_locale: str = "pt-BR",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session_guard: Optional["SessionGuard"] = None,
        audit: Optional[ResourceAuditLogger] = None,
        on_auth_required: Optional[AuthRequiredHandler] = None,
    ):
        self._store = store
        self.metrics = metrics or DerivedMetricsAdapter()
        self.transaction_limit = transaction_limit
        self.month_label_locale = month_label_locale
        loader = ResourceLoader(
            self.name,
            self._fetch_sources,
            normalize_dashboard,
            timeout=timeout,
            session_guard=session_guard,
        )
        super().__init__(
            cache,
            loader,
            TypeAdapter(DashboardSnapshot),
            audit=audit,
            on_auth_required=on_auth_required,
        )

    def empty_value(self) -> DashboardSnapshot:
        return DashboardSnapshot()

    async def _fetch_sources(self) -> BackendResult:
        results = await run_in_parallel([
            self._store.list_records(
                Collection.TRANSACTIONS, {"limit": self.transaction_limit}
            ),
            self._store.list_records(Collection.CATEGORIES),
            self._store.list_records(Collection.ASSETS),
        ])

        for result in results:
            if result.error is not None and getattr(result.error, "code", None) == AUTH_REQUIRED:
                return BackendResult.failure(result.error)

        data: dict[str, Any] = {}
        for source, result in zip(_SOURCES, results):
            if result.error is not None:
                self._logger.error(
                    "dashboard_source_failed",
                    source=source,
                    error=str(result.error),
                )
            data[source] = result.data or []

        return BackendResult.success(data)

    def view(self, today: Optional[date] = None) -> DashboardView:
        """
        Everything the dashboard renders, recomputed from the full
        snapshot on every call.
        """
        snapshot = self._data or DashboardSnapshot()
        current_month = current_month_key(today)

        aggregates = aggregate_transactions(
            snapshot.transactions,
            snapshot.categories,
            current_month,
        )
        breakdowns = aggregates.category_breakdowns

        return DashboardView(
            current_month=current_month,
            metrics=self.metrics.build(aggregates, snapshot.assets, today),
            category_data=CategoryData(
                income=breakdowns.get("income", []),
                expenses=breakdowns.get("expense", []),
                investments=breakdowns.get("investment", []),
            ),
            chart_data=build_chart_series(
                aggregates.totals_by_month,
                current_month,
                self.month_label_locale,
            ),
            is_from_cache=self._is_from_cache,
            error=str(self._error) if self._error else None,
        )
