"""
Session Orchestrator for fincache

This module ties together the components one signed-in session needs:
1. The tab storage and the nine resource caches laid out over it
2. The session guard every loader checks before fetching
3. A factory for each resource, wired with the forced-logout handler

DESIGN DECISION: The session owns every piece of tab-scoped state.
- Caches live in the session's own tab storage, never a global
- Every resource it builds reports auth failures back to it
- Logging out clears every cache namespace and disposes every resource

A FinanceSession is single-use. Once logged out, build a new one for
the next sign-in.
"""

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

import structlog

from fincache.analytics.calculators import MetricCalculators
from fincache.analytics.metrics import DerivedMetricsAdapter
from fincache.audit.logger import ResourceAuditLogger
from fincache.cache.tab_cache import Clock, TabScopedCache
from fincache.config import (
    CacheSettings,
    DashboardSettings,
    LoaderSettings,
    SessionSettings,
    get_settings,
)
from fincache.resources.assets import AssetsResource
from fincache.resources.budgets import BudgetsResource
from fincache.resources.collections import BanksResource, CardsResource, CategoriesResource
from fincache.resources.dashboard import DashboardResource
from fincache.resources.hydration import Resource
from fincache.resources.mutations import MutationStrategy
from fincache.resources.reference import ReferenceDataResource
from fincache.resources.settings import SettingsResource
from fincache.resources.transactions import TransactionsResource
from fincache.services.session import SessionGuard, SessionServiceInterface
from fincache.services.storage import (
    BackendResult,
    InMemoryRecordStore,
    InMemoryTabStorage,
    RecordStoreInterface,
    TabStorageInterface,
)


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CacheLayout:
    """Where one resource's entries live and how long they stay fresh."""
    prefix: str
    use_keys: bool = False
    long_lived: bool = False


# Transactional data stays fresh for the default TTL, rarely changing
# catalogs for the reference TTL
CACHE_LAYOUT: dict[str, CacheLayout] = {
    "dashboard": CacheLayout("dashboard_cache"),
    "transactions": CacheLayout("transactions_cache", use_keys=True),
    "assets": CacheLayout("assets_cache"),
    "budgets": CacheLayout("budgets_cache", use_keys=True),
    "settings": CacheLayout("settings_cache"),
    "reference_data": CacheLayout("reference_data_cache_v3", use_keys=True, long_lived=True),
    "banks": CacheLayout("banks_cache", long_lived=True),
    "cards": CacheLayout("cards_cache", long_lived=True),
    "categories": CacheLayout("categories_cache", long_lived=True),
}

LogoutCallback = Callable[[str], None]


def build_caches(
    storage: TabStorageInterface,
    cache_settings: CacheSettings,
    clock: Optional[Clock] = None,
) -> dict[str, TabScopedCache]:
    """One TabScopedCache per resource, all over the same tab storage."""
    return {
        name: TabScopedCache(
            storage,
            layout.prefix,
            ttl_seconds=(
                cache_settings.reference_ttl_seconds if layout.long_lived
                else cache_settings.default_ttl_seconds
            ),
            use_keys=layout.use_keys,
            max_entry_bytes=cache_settings.max_entry_bytes,
            prune_age_seconds=cache_settings.prune_age_seconds,
            clock=clock,
        )
        for name, layout in CACHE_LAYOUT.items()
    }


class FinanceSession:
    """
    One signed-in session.

    Usage:
        session = FinanceSession(store, session_service)
        dashboard = session.dashboard()
        await dashboard.activate()

        budgets = session.budgets(2024, 3)
        await budgets.activate()
        await budgets.update(7, {"limit_amount": 900})

        session.on_logout(lambda reason: show_login())
    """

    def __init__(
        self,
        store: RecordStoreInterface,
        session_service: Optional[SessionServiceInterface] = None,
        *,
        storage: Optional[TabStorageInterface] = None,
        cache_settings: Optional[CacheSettings] = None,
        loader_settings: Optional[LoaderSettings] = None,
        dashboard_settings: Optional[DashboardSettings] = None,
        session_settings: Optional[SessionSettings] = None,
        calculators: Optional[MetricCalculators] = None,
        audit: Optional[ResourceAuditLogger] = None,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self._session_service = session_service
        self.storage = storage or InMemoryTabStorage()
        self.audit = audit or ResourceAuditLogger()

        self.cache_settings = cache_settings or get_settings().cache
        self.loader_settings = loader_settings or get_settings().loader
        self.dashboard_settings = dashboard_settings or get_settings().dashboard
        session_settings = session_settings or get_settings().session

        self.caches = build_caches(self.storage, self.cache_settings, clock)
        self.session_guard: Optional[SessionGuard] = (
            SessionGuard(session_service, ttl_seconds=session_settings.auth_cache_ttl_seconds)
            if session_service is not None
            else None
        )
        self.metrics = DerivedMetricsAdapter(
            calculators=calculators,
            savings_goal_percent=self.dashboard_settings.savings_goal_percent,
        )

        self._resources: list[Resource] = []
        self._logout_callbacks: list[LogoutCallback] = []
        self._logged_out = False
        self._logger = logger

    @property
    def logged_out(self) -> bool:
        return self._logged_out

    @property
    def timeout(self) -> float:
        return self.loader_settings.timeout_seconds

    def cache(self, name: str) -> TabScopedCache:
        """The cache of one resource, by resource name."""
        return self.caches[name]

    # -------------------------------------------------------------------------
    # Resource factories
    # -------------------------------------------------------------------------

    def _wiring(self) -> dict[str, Any]:
        if self._logged_out:
            raise SessionEndedError("Session has ended, sign in again")
        return {
            "timeout": self.timeout,
            "session_guard": self.session_guard,
            "audit": self.audit,
            "on_auth_required": self.force_logout,
        }

    def _track(self, resource: Resource) -> Resource:
        self._resources = [r for r in self._resources if not r.disposed]
        self._resources.append(resource)
        return resource

    def transactions(
        self,
        filters: Optional[dict[str, Any]] = None,
        strategy: Optional[MutationStrategy] = None,
    ) -> TransactionsResource:
        return self._track(TransactionsResource(
            self.store,
            self.caches["transactions"],
            filters=filters,
            strategy=strategy,
            **self._wiring(),
        ))

    def assets(self, strategy: Optional[MutationStrategy] = None) -> AssetsResource:
        return self._track(AssetsResource(
            self.store, self.caches["assets"], strategy=strategy, **self._wiring()
        ))

    def banks(self, strategy: Optional[MutationStrategy] = None) -> BanksResource:
        return self._track(BanksResource(
            self.store, self.caches["banks"], strategy=strategy, **self._wiring()
        ))

    def cards(self, strategy: Optional[MutationStrategy] = None) -> CardsResource:
        return self._track(CardsResource(
            self.store, self.caches["cards"], strategy=strategy, **self._wiring()
        ))

    def categories(self, strategy: Optional[MutationStrategy] = None) -> CategoriesResource:
        return self._track(CategoriesResource(
            self.store, self.caches["categories"], strategy=strategy, **self._wiring()
        ))

    def budgets(
        self,
        year: int,
        month: int,
        strategy: Optional[MutationStrategy] = None,
    ) -> BudgetsResource:
        return self._track(BudgetsResource(
            self.store,
            self.caches["budgets"],
            year,
            month,
            strategy=strategy,
            **self._wiring(),
        ))

    def settings(self, strategy: Optional[MutationStrategy] = None) -> SettingsResource:
        return self._track(SettingsResource(
            self.store, self.caches["settings"], strategy=strategy, **self._wiring()
        ))

    def reference_data(self, tables: Optional[Iterable[str]] = None) -> ReferenceDataResource:
        return self._track(ReferenceDataResource(
            self.store, self.caches["reference_data"], tables=tables, **self._wiring()
        ))

    def dashboard(self) -> DashboardResource:
        return self._track(DashboardResource(
            self.store,
            self.caches["dashboard"],
            metrics=self.metrics,
            transaction_limit=self.loader_settings.dashboard_transaction_limit,
            month_label_locale=self.dashboard_settings.month_label_locale,
            **self._wiring(),
        ))

    # -------------------------------------------------------------------------
    # Logout
    # -------------------------------------------------------------------------

    def on_logout(self, callback: LogoutCallback) -> Callable[[], None]:
        """
        Call ``callback(reason)`` when the session ends.

        Returns a callable that unregisters it.
        """
        self._logout_callbacks.append(callback)

        def unregister() -> None:
            if callback in self._logout_callbacks:
                self._logout_callbacks.remove(callback)

        return unregister

    def force_logout(self, error: Optional[BaseException] = None) -> None:
        """
        End the session after the backend demanded re-authentication.

        Safe to call repeatedly: parallel loads failing with the same
        expired session end it once.
        """
        reason = f"authentication required: {error}" if error else "authentication required"
        self._end_session(reason)

    async def logout(self) -> BackendResult:
        """
        Sign out on the authentication service, then end the session.

        Local state is cleared even if the service call fails.
        """
        result = BackendResult.success(None)
        if self._session_service is not None:
            try:
                result = await self._session_service.sign_out()
            except Exception as e:
                result = BackendResult.failure(e)
            if result.error is not None:
                self._logger.warning("sign_out_failed", error=str(result.error))

        self._end_session("user logout")
        return result

    def _end_session(self, reason: str) -> None:
        if self._logged_out:
            return
        self._logged_out = True

        for cache in self.caches.values():
            cache.clear_all()
        if self.session_guard is not None:
            self.session_guard.clear()

        for resource in self._resources:
            resource.dispose()
        self._resources.clear()

        for callback in list(self._logout_callbacks):
            try:
                callback(reason)
            except Exception as e:
                self._logger.error("logout_callback_failed", error=str(e))

        self.audit.log_logout(reason, [c.prefix for c in self.caches.values()])

    def __repr__(self) -> str:
        state = "logged_out" if self._logged_out else "active"
        return f"FinanceSession(resources={len(self._resources)}, state={state})"


def create_session_components(
    store: Optional[RecordStoreInterface] = None,
    session_service: Optional[SessionServiceInterface] = None,
    storage: Optional[TabStorageInterface] = None,
) -> tuple[FinanceSession, "Prefetcher"]:
    """
    Factory function to create the components of one session.

    Args:
        store: Record store to read and write through. Defaults to an
               empty in-memory store (offline use).
        session_service: Authentication service checked before loads.
                         Without one, loads skip the session check.
        storage: Tab storage backing the caches.

    Returns:
        (session, prefetcher)
    """
    # Imported here: prefetch depends on this module
    from fincache.prefetch import Prefetcher

    if store is None:
        logger.warning("record_store_not_configured", fallback="in_memory")
        store = InMemoryRecordStore()

    session = FinanceSession(store, session_service, storage=storage)
    prefetcher = Prefetcher(session)
    return session, prefetcher


class SessionEndedError(Exception):
    """A resource was requested from a session that has logged out."""
    pass
