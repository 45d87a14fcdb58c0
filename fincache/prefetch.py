"""
Route Prefetching

Warms a page's cache before the user navigates to it, so the page
hydrates from a fresh entry instead of showing a loading state.

Prefetchers write exactly what the resource itself would cache, through
the same loader (session check, timeout, normalization). An existing
fresh entry is never refetched.

Each route is prefetched at most once per session. A route whose
prefetch failed is forgotten so the next navigation retries it.
"""

from datetime import date
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

import structlog
from pydantic import TypeAdapter

from fincache.models.audit import ResourceEventBuilder
from fincache.models.records import Budget, UserSettings
from fincache.resources.budgets import budget_sub_key
from fincache.resources.loader import ResourceLoader, normalize_budgets
from fincache.resources.settings import normalize_settings
from fincache.services.storage.interface import Collection

if TYPE_CHECKING:
    from fincache.orchestrator import FinanceSession


RoutePrefetcher = Callable[["Prefetcher"], Awaitable[Any]]

BUDGETS_ROUTE = "/orcamento-categoria"
SETTINGS_ROUTE = "/configuracoes"

_BUDGETS_ADAPTER = TypeAdapter(list[Budget])
_SETTINGS_ADAPTER = TypeAdapter(Optional[UserSettings])


async def _current_budgets(prefetcher: "Prefetcher") -> bool:
    today = prefetcher.today()
    return await prefetcher.prefetch_budgets(today.year, today.month)


async def _settings(prefetcher: "Prefetcher") -> bool:
    return await prefetcher.prefetch_settings()


ROUTE_PREFETCHERS: dict[str, RoutePrefetcher] = {
    BUDGETS_ROUTE: _current_budgets,
    SETTINGS_ROUTE: _settings,
}


class Prefetcher:
    """
    Usage:
        prefetcher = Prefetcher(session)
        await prefetcher.prefetch_route("/configuracoes")  # on link hover
    """

    def __init__(
        self,
        session: "FinanceSession",
        routes: Optional[dict[str, RoutePrefetcher]] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self._session = session
        self._routes = dict(routes if routes is not None else ROUTE_PREFETCHERS)
        self.today = today or date.today
        self._prefetched: set[str] = set()
        self._logger = structlog.get_logger(__name__)

        # A new sign-in starts with nothing prefetched
        session.on_logout(lambda _reason: self.clear())

    @property
    def prefetched_routes(self) -> frozenset[str]:
        return frozenset(self._prefetched)

    def _loader(self, name: str, fetch: Callable, normalize: Callable) -> ResourceLoader:
        return ResourceLoader(
            name,
            fetch,
            normalize,
            timeout=self._session.timeout,
            session_guard=self._session.session_guard,
        )

    async def prefetch_budgets(self, year: int, month: int) -> bool:
        """
        Cache one month's budgets unless a fresh entry exists.

        Returns True if the cache was written.
        """
        cache = self._session.cache("budgets")
        sub_key = budget_sub_key(year, month)
        if cache.has_fresh(sub_key):
            self._session.audit.log(ResourceEventBuilder.prefetch_completed(
                "budgets", cache.key_for(sub_key), skipped=True
            ))
            return False

        store = self._session.store
        budgets = await self._loader(
            "budgets",
            lambda: store.list_records(Collection.BUDGETS, {"year": year, "month": month}),
            normalize_budgets,
        ).fetch()

        stored = cache.set(sub_key, _BUDGETS_ADAPTER.dump_python(budgets, mode="json"))
        self._session.audit.log(ResourceEventBuilder.prefetch_completed(
            "budgets", cache.key_for(sub_key), skipped=False
        ))
        return stored

    async def prefetch_settings(self) -> bool:
        """
        Cache the account settings unless a fresh entry exists.

        Returns True if the cache was written.
        """
        cache = self._session.cache("settings")
        if cache.has_fresh():
            self._session.audit.log(ResourceEventBuilder.prefetch_completed(
                "settings", cache.key_for(), skipped=True
            ))
            return False

        settings = await self._loader(
            "settings",
            self._session.store.get_user_settings,
            normalize_settings,
        ).fetch()
        if settings is None:
            return False

        stored = cache.set(_SETTINGS_ADAPTER.dump_python(settings, mode="json"))
        self._session.audit.log(ResourceEventBuilder.prefetch_completed(
            "settings", cache.key_for(), skipped=False
        ))
        return stored

    async def prefetch_route(self, path: str) -> None:
        """
        Prefetch the data of a route, at most once.

        Unknown routes are ignored. Failures are logged and never raised.
        """
        if path in self._prefetched:
            return

        prefetcher = self._routes.get(path)
        if prefetcher is None:
            return

        self._prefetched.add(path)
        try:
            await prefetcher(self)
        except Exception as e:
            # Forget the route so the next navigation retries
            self._prefetched.discard(path)
            self._session.audit.log_prefetch_failed(path, e)

    def clear(self) -> None:
        """Forget which routes were prefetched."""
        self._prefetched.clear()
