"""
Settings Resource

Profile, preferences and household members of the signed-in account.

Profile and preference edits, member edits and member removals are
optimistic. Adding a member waits for the backend, which generates the
member's ID, and then folds the returned record in.
"""

import math
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from pydantic import TypeAdapter

from fincache.audit.logger import ResourceAuditLogger
from fincache.cache.tab_cache import TabScopedCache
from fincache.models.aggregates import SubscriptionInfo
from fincache.models.records import AccountMember, UserSettings
from fincache.resources.hydration import AuthRequiredHandler, ResourceResult
from fincache.resources.loader import DEFAULT_TIMEOUT_SECONDS, ResourceLoader
from fincache.resources.mutations import MutableResource, MutationStrategy
from fincache.services.storage.interface import Collection, RecordStoreInterface

if TYPE_CHECKING:
    from fincache.services.session.guard import SessionGuard


# status -> (label, color, expired)
_SUBSCRIPTION_LABELS = {
    "active": ("Plano Ativo", "green", False),
    "expired": ("Plano Expirado", "red", True),
    "cancelled": ("Plano Cancelado", "gray", True),
}


def normalize_settings(data: Optional[dict]) -> Optional[UserSettings]:
    if data is None:
        return None
    return UserSettings.model_validate(data)


def trial_days_remaining(
    trial_ends_at: Optional[datetime],
    now: Optional[datetime] = None,
) -> int:
    """Whole days until the trial ends, rounded up and never negative."""
    if trial_ends_at is None:
        return 0
    now = now or datetime.now(timezone.utc)
    if trial_ends_at.tzinfo is None:
        trial_ends_at = trial_ends_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    days = math.ceil((trial_ends_at - now).total_seconds() / 86400)
    return max(0, days)


def format_subscription_status(
    status: Optional[str],
    trial_ends_at: Optional[datetime],
    now: Optional[datetime] = None,
) -> SubscriptionInfo:
    """Display label, color and expiry flag for a subscription status."""
    status = status or "trial"

    if status == "trial":
        days = trial_days_remaining(trial_ends_at, now)
        if days <= 0:
            return SubscriptionInfo(
                status=status,
                label="Período de Teste Expirado",
                color="red",
                expired=True,
            )
        return SubscriptionInfo(
            status=status,
            label="Período de Teste",
            color="yellow",
            expired=False,
            days_remaining=days,
        )

    if status in _SUBSCRIPTION_LABELS:
        label, color, expired = _SUBSCRIPTION_LABELS[status]
        return SubscriptionInfo(status=status, label=label, color=color, expired=expired)

    return SubscriptionInfo(status=status, label="Desconhecido", color="gray", expired=False)


class SettingsResource(MutableResource[Optional[UserSettings]]):
    name = "settings"
    default_strategy = MutationStrategy.OPTIMISTIC

    def __init__(
        self,
        store: RecordStoreInterface,
        cache: TabScopedCache,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session_guard: Optional["SessionGuard"] = None,
        strategy: Optional[MutationStrategy] = None,
        audit: Optional[ResourceAuditLogger] = None,
        on_auth_required: Optional[AuthRequiredHandler] = None,
    ):
        self._store = store
        loader = ResourceLoader(
            self.name,
            store.get_user_settings,
            normalize_settings,
            timeout=timeout,
            session_guard=session_guard,
        )
        super().__init__(
            cache,
            loader,
            TypeAdapter(Optional[UserSettings]),
            strategy=strategy,
            audit=audit,
            on_auth_required=on_auth_required,
        )

    def empty_value(self) -> Optional[UserSettings]:
        return None

    @staticmethod
    def _with(settings: Optional[UserSettings], **changes: Any) -> UserSettings:
        base = settings.model_dump() if settings is not None else {}
        return UserSettings.model_validate({**base, **changes})

    # -------------------------------------------------------------------------
    # Profile and preferences
    # -------------------------------------------------------------------------

    async def update_personal_info(self, updates: dict[str, Any]) -> ResourceResult[Any]:
        return await self._mutate(
            "update_personal_info",
            lambda: self._store.update_user_settings("personal_info", updates),
            lambda settings: self._with(settings, **updates),
        )

    async def update_preferences(self, preferences: dict[str, Any]) -> ResourceResult[Any]:
        return await self._mutate(
            "update_preferences",
            lambda: self._store.update_user_settings("preferences", preferences),
            lambda settings: self._with(settings, **preferences),
        )

    # -------------------------------------------------------------------------
    # Members
    # -------------------------------------------------------------------------

    def _members(self, settings: Optional[UserSettings]) -> list[AccountMember]:
        return list(settings.members) if settings is not None else []

    async def add_member(self, member: dict[str, Any]) -> ResourceResult[Any]:
        """Add a member once the backend has created it."""
        return await self._apply_on_success(
            "add_member",
            lambda: self._store.create_record(Collection.ACCOUNT_MEMBERS, member),
            lambda settings, created: self._with(
                settings,
                members=self._members(settings) + [AccountMember.model_validate(created)],
            ),
        )

    async def update_member(self, member_id: Any, updates: dict[str, Any]) -> ResourceResult[Any]:
        def apply(settings: Optional[UserSettings]) -> UserSettings:
            members = [
                AccountMember.model_validate({**m.model_dump(), **updates})
                if m.id == member_id else m
                for m in self._members(settings)
            ]
            return self._with(settings, members=members)

        return await self._mutate(
            "update_member",
            lambda: self._store.update_record(Collection.ACCOUNT_MEMBERS, member_id, updates),
            apply,
        )

    async def remove_member(self, member_id: Any) -> ResourceResult[Any]:
        return await self._mutate(
            "remove_member",
            lambda: self._store.delete_record(Collection.ACCOUNT_MEMBERS, member_id),
            lambda settings: self._with(
                settings,
                members=[m for m in self._members(settings) if m.id != member_id],
            ),
        )

    # -------------------------------------------------------------------------
    # Account
    # -------------------------------------------------------------------------

    async def reset_account(self) -> ResourceResult[Any]:
        """Delete the account's records; on success forget the settings."""
        result = await self._call_backend(self._store.reset_account)
        if result.error is not None:
            return self._mutation_failed("reset_account", result.error, rolled_back=False)

        self._cache.clear()
        self._set_state(data=None)
        self._mutation_succeeded("reset_account", "clear")
        return ResourceResult(data=result.data)

    def subscription_info(self, now: Optional[datetime] = None) -> Optional[SubscriptionInfo]:
        if self._data is None:
            return None
        return format_subscription_status(
            self._data.subscription_status,
            self._data.trial_ends_at,
            now,
        )

    def trial_days_remaining(self, now: Optional[datetime] = None) -> int:
        if self._data is None:
            return 0
        return trial_days_remaining(self._data.trial_ends_at, now)
