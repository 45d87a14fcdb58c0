"""
Collection Resources

A CollectionResource is a list of records of one backend collection
with create / update / remove. Banks, cards and categories are plain
collections; transactions, assets and budgets extend this base.
"""

from typing import TYPE_CHECKING, Any, Callable, ClassVar, Generic, Optional, TypeVar

from pydantic import TypeAdapter

from fincache.audit.logger import ResourceAuditLogger
from fincache.cache.tab_cache import TabScopedCache
from fincache.models.records import Bank, Card, Category, Record
from fincache.resources.hydration import AuthRequiredHandler, ResourceResult
from fincache.resources.loader import (
    DEFAULT_TIMEOUT_SECONDS,
    ResourceLoader,
    normalize_banks,
    normalize_cards,
    normalize_categories,
)
from fincache.resources.mutations import MutableResource, MutationStrategy
from fincache.services.storage.interface import Collection, RecordStoreInterface

if TYPE_CHECKING:
    from fincache.services.session.guard import SessionGuard


R = TypeVar("R", bound=Record)


class CollectionResource(MutableResource[list[R]], Generic[R]):
    """
    A list of records of one backend collection.

    Subclasses declare ``name``, ``collection``, ``record_type`` and
    ``normalize``.
    """

    collection: ClassVar[Collection]
    record_type: ClassVar[type[Record]]
    normalize: ClassVar[Callable[[Any], list]]

    def __init__(
        self,
        store: RecordStoreInterface,
        cache: TabScopedCache,
        *,
        filters: Optional[dict[str, Any]] = None,
        sub_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session_guard: Optional["SessionGuard"] = None,
        strategy: Optional[MutationStrategy] = None,
        audit: Optional[ResourceAuditLogger] = None,
        on_auth_required: Optional[AuthRequiredHandler] = None,
    ):
        self._store = store
        self.filters = dict(filters or {})
        loader = ResourceLoader(
            self.name,
            lambda: store.list_records(self.collection, self.filters or None),
            type(self).normalize,
            timeout=timeout,
            session_guard=session_guard,
        )
        super().__init__(
            cache,
            loader,
            TypeAdapter(list[self.record_type]),
            strategy=strategy,
            sub_key=sub_key,
            audit=audit,
            on_auth_required=on_auth_required,
        )

    @property
    def items(self) -> list[R]:
        """Loaded records (empty before the first load)."""
        return list(self._data or [])

    def find(self, record_id: Any) -> Optional[R]:
        for record in self._data or []:
            if record.id == record_id:
                return record
        return None

    def _merged(self, record: R, changes: dict[str, Any]) -> R:
        return self.record_type.model_validate({
            **record.model_dump(),
            **changes,
        })

    async def create(self, payload: dict[str, Any]) -> ResourceResult[Any]:
        """
        Create a record.

        Creates always reload, since the server generates the ID and
        computed fields. Under OPTIMISTIC the reload is silent.
        """
        return await self._mutate(
            "create",
            lambda: self._store.create_record(self.collection, payload),
            silent_reload=self.strategy is MutationStrategy.OPTIMISTIC,
        )

    async def update(self, record_id: Any, changes: dict[str, Any]) -> ResourceResult[Any]:
        return await self._mutate(
            "update",
            lambda: self._store.update_record(self.collection, record_id, changes),
            lambda records: [
                self._merged(r, changes) if r.id == record_id else r
                for r in records
            ],
        )

    async def remove(self, record_id: Any) -> ResourceResult[Any]:
        return await self._mutate(
            "remove",
            lambda: self._store.delete_record(self.collection, record_id),
            lambda records: [r for r in records if r.id != record_id],
        )


class BanksResource(CollectionResource[Bank]):
    name = "banks"
    collection = Collection.BANKS
    record_type = Bank
    normalize = staticmethod(normalize_banks)


class CardsResource(CollectionResource[Card]):
    name = "cards"
    collection = Collection.CARDS
    record_type = Card
    normalize = staticmethod(normalize_cards)


class CategoriesResource(CollectionResource[Category]):
    name = "categories"
    collection = Collection.CATEGORIES
    record_type = Category
    normalize = staticmethod(normalize_categories)

    def by_id(self) -> dict[Any, Category]:
        return {c.id: c for c in self._data or [] if c.id is not None}
