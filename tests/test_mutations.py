"""
Tests for the mutation protocol and the mutable resource domains.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from fincache.models import ResourceEventType
from fincache.resources import (
    AuthenticationRequiredError,
    BackendCallError,
    BanksResource,
    BudgetsResource,
    MutationStrategy,
    SettingsResource,
    TransactionsResource,
)
from fincache.resources.budgets import budget_sub_key, budget_totals
from fincache.resources.settings import format_subscription_status, trial_days_remaining
from fincache.services.storage import BackendError, Collection


def event_types(audit, resource):
    return [e.event_type for e in audit.recent_events(resource=resource)]


# =============================================================================
# INVALIDATE AND RELOAD
# =============================================================================

class TestInvalidateAndReload:
    """Tests for the reload strategy, using transactions."""

    @pytest.fixture
    def tx_cache(self, make_cache):
        return make_cache("transactions_cache", use_keys=True)

    @pytest.mark.asyncio
    async def test_create_clears_every_filter_variant(self, store, storage, tx_cache, audit):
        """Test that a mutation drops every cached filter set."""
        everything = TransactionsResource(store, tx_cache, audit=audit)
        food = TransactionsResource(store, tx_cache, filters={"category_id": 10}, audit=audit)
        await everything.activate()
        await food.activate()
        assert len(storage.keys()) == 2

        result = await everything.create({
            "description": "Cinema",
            "amount": -40,
            "transaction_date": "2024-03-22",
            "transaction_type_internal_name": "expense",
        })

        assert result.ok is True
        assert storage.keys() == ["transactions_cache:all"]
        assert len(everything.items) == 4
        assert everything.items[0].description == "Cinema"

    @pytest.mark.asyncio
    async def test_failure_leaves_state_untouched(self, store, storage, tx_cache, audit):
        """Test that a failed mutation changes neither state nor cache."""
        transactions = TransactionsResource(store, tx_cache, audit=audit)
        await transactions.activate()
        raw_before = storage.get_item("transactions_cache:all")
        items_before = transactions.items

        store.fail("update", BackendError("constraint violated"))
        result = await transactions.update(1, {"amount": -999})

        assert isinstance(result.error, BackendCallError)
        assert transactions.items == items_before
        assert storage.get_item("transactions_cache:all") == raw_before
        assert ResourceEventType.MUTATION_FAILED in event_types(audit, "transactions")

    @pytest.mark.asyncio
    async def test_update_reloads_from_backend(self, store, tx_cache, audit):
        """Test that a successful update shows the server's version."""
        transactions = TransactionsResource(store, tx_cache, audit=audit)
        await transactions.activate()

        await transactions.update(1, {"amount": -150})

        assert transactions.find(1).amount == Decimal("-150")
        assert store.call_count("list", Collection.TRANSACTIONS) == 2

    @pytest.mark.asyncio
    async def test_remove(self, store, tx_cache, audit):
        """Test that a removed record disappears after the reload."""
        transactions = TransactionsResource(store, tx_cache, audit=audit)
        await transactions.activate()

        await transactions.remove(2)

        assert transactions.find(2) is None
        assert len(transactions.items) == 2

    @pytest.mark.asyncio
    async def test_strategy_is_a_parameter(self, store, make_cache, audit):
        """Test that the strategy can be declared per instance."""
        banks = BanksResource(
            store,
            make_cache("banks_cache"),
            strategy=MutationStrategy.OPTIMISTIC,
            audit=audit,
        )
        await banks.activate()

        await banks.update(1, {"name": "Nu"})

        assert banks.find(1).name == "Nu"
        assert store.call_count("list", Collection.BANKS) == 1


# =============================================================================
# OPTIMISTIC: BUDGETS
# =============================================================================

class TestBudgets:
    """Tests for optimistic budget mutations."""

    @pytest.fixture
    def budgets_cache(self, make_cache):
        return make_cache("budgets_cache", use_keys=True)

    @pytest.fixture
    async def march(self, store, budgets_cache, audit, auth_events):
        budgets = BudgetsResource(
            store, budgets_cache, 2024, 3, audit=audit, on_auth_required=auth_events
        )
        await budgets.activate()
        return budgets

    @pytest.mark.asyncio
    async def test_loads_one_month(self, march):
        """Test that only the month's budgets are loaded."""
        assert [b.id for b in march.items] == [1, 2]
        assert march.cache_key == "budgets_cache:2024-3"
        assert march.strategy is MutationStrategy.OPTIMISTIC

    @pytest.mark.asyncio
    async def test_update_applies_before_backend(self, store, march, budgets_cache):
        """Test that the change is visible while the backend call runs."""
        store.latency = 0.02
        task = asyncio.ensure_future(march.update(1, {"limit_amount": 900}))
        await asyncio.sleep(0)

        assert march.find(1).limit_amount == Decimal("900")
        assert budgets_cache.get("2024-3").data[0]["limit_amount"] == "900"

        result = await task
        assert result.ok is True
        assert store.records(Collection.BUDGETS)[0]["limit_amount"] == 900
        assert store.call_count("list", Collection.BUDGETS) == 1

    @pytest.mark.asyncio
    async def test_rollback_is_byte_exact(self, store, storage, march, audit, clock):
        """Test that a failed update restores state and cache exactly."""
        raw_before = storage.get_item("budgets_cache:2024-3")
        data_before = march.data
        clock.advance(seconds=5)

        store.fail("update", BackendError("limit below spending"))
        result = await march.update(1, {"limit_amount": 1})

        assert isinstance(result.error, BackendCallError)
        assert storage.get_item("budgets_cache:2024-3") == raw_before
        assert march.data is data_before
        assert march.find(1).limit_amount == Decimal("500")
        assert ResourceEventType.MUTATION_ROLLED_BACK in event_types(audit, "budgets")

    @pytest.mark.asyncio
    async def test_rollback_on_raised_exception(self, store, march):
        """Test that an exception from the backend call rolls back too."""
        store.fail("delete", ConnectionError("socket closed"))

        result = await march.remove(2)

        assert isinstance(result.error, BackendCallError)
        assert [b.id for b in march.items] == [1, 2]

    @pytest.mark.asyncio
    async def test_rollback_without_cache_entry(self, store, storage, march):
        """Test that rolling back a mutation with no entry leaves no entry."""
        storage.remove_item("budgets_cache:2024-3")
        store.fail("update", BackendError("nope"))

        await march.update(2, {"limit_amount": 10})

        assert storage.get_item("budgets_cache:2024-3") is None

    @pytest.mark.asyncio
    async def test_only_limit_applied_locally(self, march):
        """Test that non-limit fields are sent but not applied optimistically."""
        await march.update(2, {"limit_amount": 350, "alert_percentage": 50})

        assert march.find(2).limit_amount == Decimal("350")
        assert march.find(2).alert_percentage == 80

    @pytest.mark.asyncio
    async def test_remove_without_reload(self, store, march):
        """Test that a successful removal is kept without reloading."""
        await march.remove(2)

        assert [b.id for b in march.items] == [1]
        assert store.call_count("list", Collection.BUDGETS) == 1

    @pytest.mark.asyncio
    async def test_create_reloads_silently(self, store, march):
        """Test that creates reload to pick up computed fields, without spinner."""
        snapshots = []
        march.subscribe(snapshots.append)

        result = await march.create({"category_id": 13, "limit_amount": 200})

        assert result.ok is True
        created = march.find(result.data["id"])
        assert created.spent_amount == Decimal("0")
        assert created.month == 3
        assert all(s.loading is False for s in snapshots)
        assert store.call_count("list", Collection.BUDGETS) == 2

    @pytest.mark.asyncio
    async def test_copy_from_month(self, store, budgets_cache, audit, march):
        """Test copying budgets into an empty month."""
        april = BudgetsResource(store, budgets_cache, 2024, 4, audit=audit)
        await april.activate()
        assert april.items == []

        result = await april.copy_from_month(2024, 3)

        assert result.ok is True
        assert sorted(b.category_id for b in april.items) == [10, 12]
        assert all(b.spent_amount == 0 for b in april.items)
        assert budgets_cache.get("2024-3") is not None

    @pytest.mark.asyncio
    async def test_auth_failure_rolls_back_and_logs_out(self, store, march, auth_events):
        """Test that AUTH_REQUIRED during a mutation forces logout."""
        store.sign_out()

        result = await march.update(1, {"limit_amount": 1})

        assert isinstance(result.error, AuthenticationRequiredError)
        assert march.find(1).limit_amount == Decimal("500")
        assert len(auth_events.events) == 1

    @pytest.mark.asyncio
    async def test_totals(self, march):
        """Test the month's budget totals."""
        totals = march.totals
        assert totals.total_limit == Decimal("800")
        assert totals.total_spent == Decimal("120")
        assert totals.remaining == Decimal("680")
        assert totals.percentage == pytest.approx(15.0)

    def test_totals_without_limit(self):
        """Test that no budgets means 0 percent."""
        assert budget_totals([]).percentage == 0.0

    def test_sub_key(self):
        """Test the budgets sub-key format."""
        assert budget_sub_key(2024, 3) == "2024-3"


# =============================================================================
# OPTIMISTIC: SETTINGS
# =============================================================================

class TestSettings:
    """Tests for settings mutations and subscription display."""

    @pytest.fixture
    async def settings(self, store, make_cache, audit):
        resource = SettingsResource(store, make_cache("settings_cache"), audit=audit)
        await resource.activate()
        return resource

    @pytest.mark.asyncio
    async def test_loads_settings_and_members(self, settings):
        """Test that settings include the account members."""
        assert settings.data.full_name == "Ana Souza"
        assert [m.name for m in settings.data.members] == ["Ana"]

    @pytest.mark.asyncio
    async def test_update_personal_info(self, store, settings):
        """Test an optimistic profile update."""
        result = await settings.update_personal_info({"full_name": "Ana S."})

        assert result.ok is True
        assert settings.data.full_name == "Ana S."
        stored = await store.get_user_settings()
        assert stored.data["full_name"] == "Ana S."

    @pytest.mark.asyncio
    async def test_preferences_rollback(self, store, storage, settings):
        """Test that a failed preference update is rolled back."""
        raw_before = storage.get_item("settings_cache")
        store.fail("update_settings", BackendError("read only"))

        result = await settings.update_preferences({"currency": "USD"})

        assert result.ok is False
        assert settings.data.currency == "BRL"
        assert storage.get_item("settings_cache") == raw_before

    @pytest.mark.asyncio
    async def test_add_member_applied_on_success(self, settings):
        """Test that a new member shows up with its server ID."""
        result = await settings.add_member({"name": "Bruno", "email": "bruno@example.com"})

        assert result.ok is True
        members = settings.data.members
        assert [m.name for m in members] == ["Ana", "Bruno"]
        assert members[1].id == result.data["id"]

    @pytest.mark.asyncio
    async def test_add_member_failure_changes_nothing(self, store, settings):
        """Test that a refused member is never shown."""
        store.fail("create", BackendError("plan limit"), collection=Collection.ACCOUNT_MEMBERS)

        result = await settings.add_member({"name": "Bruno"})

        assert result.ok is False
        assert len(settings.data.members) == 1

    @pytest.mark.asyncio
    async def test_update_and_remove_member(self, settings):
        """Test optimistic member edits."""
        await settings.update_member(1, {"name": "Ana Maria"})
        assert settings.data.members[0].name == "Ana Maria"

        await settings.remove_member(1)
        assert settings.data.members == []

    @pytest.mark.asyncio
    async def test_reset_account(self, store, storage, settings):
        """Test that a reset clears records, cache and settings state."""
        result = await settings.reset_account()

        assert result.ok is True
        assert settings.data is None
        assert storage.get_item("settings_cache") is None
        assert store.records(Collection.TRANSACTIONS) == []

    @pytest.mark.asyncio
    async def test_subscription_info(self, settings):
        """Test the subscription display of a running trial."""
        now = datetime(2024, 3, 9, tzinfo=timezone.utc)

        info = settings.subscription_info(now)

        assert info.label == "Período de Teste"
        assert info.days_remaining == 11
        assert info.expired is False
        assert settings.trial_days_remaining(now) == 11


class TestSubscriptionStatus:
    """Tests for subscription status formatting."""

    NOW = datetime(2024, 3, 9, 12, 0, tzinfo=timezone.utc)

    def test_trial_rounds_days_up(self):
        """Test that a partial day counts as a whole day."""
        assert trial_days_remaining(self.NOW + timedelta(days=1, hours=6), self.NOW) == 2

    def test_trial_never_negative(self):
        """Test that an ended trial has 0 days left."""
        assert trial_days_remaining(self.NOW - timedelta(days=3), self.NOW) == 0
        assert trial_days_remaining(None, self.NOW) == 0

    def test_naive_datetimes_are_utc(self):
        """Test that naive datetimes are treated as UTC."""
        ends = datetime(2024, 3, 12, 12, 0)
        assert trial_days_remaining(ends, self.NOW) == 3

    def test_expired_trial(self):
        """Test an expired trial."""
        info = format_subscription_status("trial", self.NOW - timedelta(days=1), self.NOW)
        assert info.expired is True
        assert info.color == "red"

    @pytest.mark.parametrize("status,label,expired", [
        ("active", "Plano Ativo", False),
        ("expired", "Plano Expirado", True),
        ("cancelled", "Plano Cancelado", True),
        ("paused", "Desconhecido", False),
    ])
    def test_statuses(self, status, label, expired):
        """Test the label of each status."""
        info = format_subscription_status(status, None, self.NOW)
        assert info.label == label
        assert info.expired is expired

    def test_missing_status_is_trial(self):
        """Test that no status is treated as a trial."""
        info = format_subscription_status(None, self.NOW + timedelta(days=5), self.NOW)
        assert info.status == "trial"
        assert info.days_remaining == 5
