"""
Mutation Protocol

Two strategies, declared per resource:

INVALIDATE_AND_RELOAD
    Call the backend. On failure nothing changes. On success the
    resource's cache namespace is cleared and the data reloaded.

OPTIMISTIC
    Apply the change to state and cache first, then call the backend.
    On failure both are restored from the pre-mutation snapshot
    back-to-back, with no await in between, so no reader can observe
    restored state next to a mutated cache entry (or the reverse).

Known race: a stale revalidation started before a mutation but
finishing after it overwrites the mutation's result with older server
data. Writes are last-write-wins; this module does not special-case it.
"""

from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from pydantic import TypeAdapter

from fincache.audit.logger import ResourceAuditLogger
from fincache.cache.tab_cache import TabScopedCache
from fincache.models.audit import ResourceEventBuilder
from fincache.resources.hydration import (
    AuthRequiredHandler,
    Resource,
    ResourceResult,
)
from fincache.resources.loader import (
    AuthenticationRequiredError,
    ResourceLoader,
    classify_error,
)
from fincache.services.storage.interface import BackendResult


T = TypeVar("T")

BackendCall = Callable[[], Awaitable[BackendResult]]


class MutationStrategy(str, Enum):
    """How a resource reflects a mutation locally."""
    INVALIDATE_AND_RELOAD = "invalidate_and_reload"
    OPTIMISTIC = "optimistic"


class MutableResource(Resource[T], Generic[T]):
    """
    A resource that supports create/update/delete.

    ``strategy`` decides what ``_mutate`` does with an ``apply`` function:
    under OPTIMISTIC it is applied before the backend call, under
    INVALIDATE_AND_RELOAD it is ignored and the data reloaded instead.
    """

    default_strategy: MutationStrategy = MutationStrategy.INVALIDATE_AND_RELOAD

    def __init__(
        self,
        cache: TabScopedCache,
        loader: ResourceLoader[T],
        adapter: TypeAdapter,
        *,
        strategy: Optional[MutationStrategy] = None,
        sub_key: Optional[str] = None,
        audit: Optional[ResourceAuditLogger] = None,
        on_auth_required: Optional[AuthRequiredHandler] = None,
    ):
        super().__init__(
            cache,
            loader,
            adapter,
            sub_key=sub_key,
            audit=audit,
            on_auth_required=on_auth_required,
        )
        self.strategy = strategy or self.default_strategy

    async def _call_backend(self, call: BackendCall) -> BackendResult:
        """Run a backend call; a raised exception becomes a failed result."""
        try:
            return await call()
        except Exception as e:
            return BackendResult.failure(e)

    def _mutation_failed(
        self,
        operation: str,
        error: BaseException,
        rolled_back: bool,
    ) -> ResourceResult[Any]:
        classified = classify_error(error)
        self._audit.log_mutation_failed(self.name, operation, classified, rolled_back)
        if isinstance(classified, AuthenticationRequiredError):
            self._handle_auth_required(classified)
        return ResourceResult(error=classified)

    def _mutation_succeeded(self, operation: str, strategy: str) -> None:
        self._audit.log(ResourceEventBuilder.mutation_succeeded(self.name, operation, strategy))

    def _apply_local(self, data: T) -> None:
        """Write data to cache, then state, with no await in between."""
        self._write_cache(data)
        self._set_state(data=data)

    async def _mutate(
        self,
        operation: str,
        call: BackendCall,
        apply: Optional[Callable[[T], T]] = None,
        *,
        silent_reload: bool = False,
    ) -> ResourceResult[Any]:
        """Run a mutation with the resource's declared strategy."""
        if self.strategy is MutationStrategy.OPTIMISTIC and apply is not None:
            return await self._optimistic(operation, call, apply)
        return await self._invalidate_and_reload(
            operation,
            call,
            silent=silent_reload,
            whole_namespace=self.strategy is MutationStrategy.INVALIDATE_AND_RELOAD,
        )

    async def _invalidate_and_reload(
        self,
        operation: str,
        call: BackendCall,
        *,
        silent: bool = False,
        whole_namespace: bool = True,
    ) -> ResourceResult[Any]:
        """
        Backend first; on success clear the cache and reload.

        ``whole_namespace`` clears every sub-keyed variant (every filter
        set of the resource), otherwise only this resource's entry.
        """
        result = await self._call_backend(call)
        if result.error is not None:
            return self._mutation_failed(operation, result.error, rolled_back=False)

        if whole_namespace:
            self._cache.clear_all()
        else:
            self._cache.clear(self.sub_key)
        self._audit.log(ResourceEventBuilder.cache_invalidated(self.name, self.cache_key))
        self._mutation_succeeded(operation, MutationStrategy.INVALIDATE_AND_RELOAD.value)

        await self.load(skip_loading_flag=silent)
        return ResourceResult(data=result.data)

    async def _optimistic(
        self,
        operation: str,
        call: BackendCall,
        apply: Callable[[T], T],
    ) -> ResourceResult[Any]:
        """
        Apply first, call the backend, roll back on failure.

        ``apply`` must return a new value and leave its argument untouched:
        the argument is the snapshot restored on failure.
        """
        previous_data = self._data
        previous_has_data = self._has_data
        previous_raw = self._cache.snapshot(self.sub_key)

        base = previous_data if previous_has_data and previous_data is not None else self.empty_value()
        self._apply_local(apply(base))

        result = await self._call_backend(call)
        if result.error is not None:
            # Cache and state restored back-to-back
            self._cache.restore(self.sub_key, previous_raw)
            self._set_state(data=previous_data)
            self._has_data = previous_has_data
            return self._mutation_failed(operation, result.error, rolled_back=True)

        self._mutation_succeeded(operation, MutationStrategy.OPTIMISTIC.value)
        return ResourceResult(data=result.data)

    async def _apply_on_success(
        self,
        operation: str,
        call: BackendCall,
        apply: Callable[[T, Any], T],
    ) -> ResourceResult[Any]:
        """
        Backend first; on success fold the returned record into state
        and cache. Used where the server generates the record's fields.
        """
        result = await self._call_backend(call)
        if result.error is not None:
            return self._mutation_failed(operation, result.error, rolled_back=False)

        current = self._data if self._has_data and self._data is not None else self.empty_value()
        self._apply_local(apply(current, result.data))
        self._mutation_succeeded(operation, "apply_on_success")
        return ResourceResult(data=result.data)
