"""
Hydration Protocol

Every resource starts the same way:

    IDLE ──activate()──┬── cache miss ────► COLD ──load()──► LIVE
                       ├── fresh hit ─────► CACHED_FRESH
                       └── stale hit ─────► CACHED_STALE ──background load()──► LIVE

DESIGN DECISION: activate() is guarded by the state itself.
Only the first call from IDLE reads the cache or fetches; any further
call is a no-op, so double activation never issues a duplicate fetch.

The user never sees a loading flag when a cached value exists for the
exact key: both cache-hit paths leave ``loading`` False, and the stale
path revalidates with the loading flag skipped.

Cancellation is cooperative: dispose() marks the resource and a fetch
that completes afterwards never touches state. In-flight requests are
not aborted.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, Optional, TypeVar

import structlog
from pydantic import TypeAdapter, ValidationError

from fincache.audit.logger import ResourceAuditLogger
from fincache.cache.tab_cache import TabScopedCache
from fincache.models.audit import ResourceEventBuilder
from fincache.resources.loader import (
    AuthenticationRequiredError,
    LoaderTimeoutError,
    ResourceError,
    ResourceLoader,
)


T = TypeVar("T")

AuthRequiredHandler = Callable[[BaseException], None]


class HydrationState(str, Enum):
    """Where a resource is in its startup sequence."""
    IDLE = "idle"
    COLD = "cold"
    CACHED_FRESH = "cached_fresh"
    CACHED_STALE = "cached_stale"
    LIVE = "live"


@dataclass(frozen=True)
class ResourceSnapshot(Generic[T]):
    """Observable state of a resource at one point in time."""
    data: Optional[T]
    loading: bool
    error: Optional[BaseException]
    is_from_cache: bool
    hydration_state: HydrationState


@dataclass(frozen=True)
class ResourceResult(Generic[T]):
    """Outcome of a load or mutation: ``data`` or ``error``."""
    data: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Resource(Generic[T]):
    """
    Base class of every resource.

    Subclasses provide the cache, the loader and a pydantic TypeAdapter
    for the data type. Data is validated through the adapter when read
    from the cache and dumped through it when written.
    """

    name: str = "resource"

    def __init__(
        self,
        cache: TabScopedCache,
        loader: ResourceLoader[T],
        adapter: TypeAdapter,
        *,
        sub_key: Optional[str] = None,
        audit: Optional[ResourceAuditLogger] = None,
        on_auth_required: Optional[AuthRequiredHandler] = None,
    ):
        self._cache = cache
        self._loader = loader
        self._adapter = adapter
        self.sub_key = sub_key
        self._audit = audit or ResourceAuditLogger()
        self._on_auth_required = on_auth_required
        self._logger = structlog.get_logger(__name__).bind(resource=self.name)

        self._data: Optional[T] = None
        self._has_data = False
        self._loading = False
        self._error: Optional[BaseException] = None
        self._is_from_cache = False
        self._state = HydrationState.IDLE
        self._disposed = False
        self._revalidation: Optional[asyncio.Task] = None
        self._listeners: list[Callable[[ResourceSnapshot[T]], None]] = []

    # -------------------------------------------------------------------------
    # Observable state
    # -------------------------------------------------------------------------

    @property
    def data(self) -> Optional[T]:
        return self._data

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    @property
    def is_from_cache(self) -> bool:
        return self._is_from_cache

    @property
    def hydration_state(self) -> HydrationState:
        return self._state

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def cache_key(self) -> str:
        return self._cache.key_for(self.sub_key)

    def snapshot(self) -> ResourceSnapshot[T]:
        return ResourceSnapshot(
            data=self._data,
            loading=self._loading,
            error=self._error,
            is_from_cache=self._is_from_cache,
            hydration_state=self._state,
        )

    def subscribe(self, listener: Callable[[ResourceSnapshot[T]], None]) -> Callable[[], None]:
        """
        Call ``listener`` with a snapshot after every state change.

        Returns a callable that unsubscribes.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def empty_value(self) -> T:
        """Data shown when nothing was ever loaded."""
        return []  # type: ignore[return-value]

    def _set_state(self, **changes: Any) -> None:
        if self._disposed:
            return
        if "data" in changes:
            self._data = changes["data"]
            self._has_data = True
        if "loading" in changes:
            self._loading = changes["loading"]
        if "error" in changes:
            self._error = changes["error"]
        if "is_from_cache" in changes:
            self._is_from_cache = changes["is_from_cache"]
        if "hydration_state" in changes:
            self._state = changes["hydration_state"]

        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                self._logger.error("listener_failed", error=str(e))

    # -------------------------------------------------------------------------
    # Cache access
    # -------------------------------------------------------------------------

    def _read_cache(self) -> Optional[tuple[T, bool]]:
        """Cached data and its staleness, or None on a miss."""
        cached = self._cache.get(self.sub_key)
        if cached is None:
            return None
        try:
            data = self._adapter.validate_python(cached.data)
        except ValidationError as e:
            self._logger.warning("cache_entry_invalid", key=self.cache_key, error=str(e))
            return None
        return data, cached.is_stale

    def _write_cache(self, data: T) -> bool:
        stored = self._cache.set(self.sub_key, self._adapter.dump_python(data, mode="json"))
        if not stored:
            self._audit.log(ResourceEventBuilder.cache_write_failed(
                self.name, self.cache_key, "entry not stored"
            ))
        return stored

    # -------------------------------------------------------------------------
    # Hydration
    # -------------------------------------------------------------------------

    async def activate(self) -> None:
        """
        Run the hydration sequence. Only the first call does anything.
        """
        if self._state is not HydrationState.IDLE or self._disposed:
            return

        cached = self._read_cache()
        if cached is None:
            self._audit.log_cache_read(self.name, self.cache_key, hit=False)
            self._set_state(hydration_state=HydrationState.COLD, loading=True)
            await self.load()
            return

        data, is_stale = cached
        self._audit.log_cache_read(self.name, self.cache_key, hit=True, is_stale=is_stale)
        self._set_state(
            data=data,
            is_from_cache=True,
            hydration_state=(
                HydrationState.CACHED_STALE if is_stale
                else HydrationState.CACHED_FRESH
            ),
        )
        if is_stale:
            self._audit.log(ResourceEventBuilder.revalidation_started(self.name, self.cache_key))
            self._revalidation = asyncio.ensure_future(self.load(skip_loading_flag=True))

    async def wait_for_revalidation(self) -> None:
        """Wait for a background revalidation started by activate()."""
        if self._revalidation is not None:
            await self._revalidation

    async def load(self, skip_loading_flag: bool = False) -> ResourceResult[T]:
        """
        Fetch, then apply the result to state and cache.

        Failures keep the displayed data. Authentication failures write
        nothing to the cache and invoke the forced-logout handler.
        """
        if self._disposed:
            return ResourceResult(data=self._data)

        if skip_loading_flag:
            self._set_state(error=None)
        else:
            self._set_state(error=None, loading=True)

        try:
            data = await self._loader.fetch()
        except ResourceError as e:
            return self._load_failed(e)

        if self._disposed:
            self._audit.log(ResourceEventBuilder.load_discarded(self.name))
            return ResourceResult(data=data)

        self._write_cache(data)
        self._set_state(
            data=data,
            loading=False,
            error=None,
            is_from_cache=False,
            hydration_state=HydrationState.LIVE,
        )
        self._audit.log(ResourceEventBuilder.load_succeeded(
            self.name, self.cache_key, self._item_count(data)
        ))
        return ResourceResult(data=data)

    def _load_failed(self, error: ResourceError) -> ResourceResult[T]:
        if self._disposed:
            self._audit.log(ResourceEventBuilder.load_discarded(self.name))
            return ResourceResult(error=error)

        changes: dict[str, Any] = {"error": error, "loading": False}
        if not self._has_data:
            changes["data"] = self.empty_value()
        self._set_state(**changes)

        if isinstance(error, LoaderTimeoutError):
            self._audit.log_load_timed_out(self.name, error.timeout)
        elif isinstance(error, AuthenticationRequiredError):
            self._audit.log_auth_required(self.name, error)
        else:
            self._audit.log_load_failed(self.name, error)

        if isinstance(error, AuthenticationRequiredError):
            self._handle_auth_required(error)
        return ResourceResult(data=self._data, error=error)

    def _handle_auth_required(self, error: BaseException) -> None:
        if self._on_auth_required is None:
            return
        try:
            self._on_auth_required(error)
        except Exception as e:
            self._logger.error("forced_logout_failed", error=str(e))

    @staticmethod
    def _item_count(data: Any) -> Optional[int]:
        return len(data) if isinstance(data, list) else None

    # -------------------------------------------------------------------------
    # Refresh and teardown
    # -------------------------------------------------------------------------

    async def refresh(self) -> ResourceResult[T]:
        return await self.load()

    async def force_refresh(self) -> ResourceResult[T]:
        """Drop this resource's cache entry and load with the loading flag."""
        self.invalidate()
        return await self.load()

    def invalidate(self) -> None:
        """Drop this resource's cache entry."""
        self._cache.clear(self.sub_key)
        self._audit.log(ResourceEventBuilder.cache_invalidated(self.name, self.cache_key))

    def dispose(self) -> None:
        """Stop applying results. In-flight fetches are left to finish."""
        self._disposed = True
        self._listeners.clear()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(key={self.cache_key!r}, state={self._state.value})"
