"""
Tests for the hydration protocol.

Covers the three activation paths (cold, fresh hit, stale hit), the
no-spinner guarantee, idempotent activation, failure handling and
cooperative cancellation.
"""

import asyncio

import pytest

from fincache.models import Bank, ResourceEventType
from fincache.resources import (
    AuthenticationRequiredError,
    BackendCallError,
    BanksResource,
    HydrationState,
    LoaderTimeoutError,
)
from fincache.services.storage import BackendError, Collection, InMemoryRecordStore


CACHED_BANKS = [{"id": 9, "name": "Itau", "color": "#ec7000"}]


@pytest.fixture
def banks_cache(make_cache):
    return make_cache("banks_cache", ttl_seconds=3600)


def make_banks(store, cache, audit, auth_events=None, **kwargs):
    return BanksResource(
        store,
        cache,
        audit=audit,
        on_auth_required=auth_events,
        **kwargs,
    )


def record_snapshots(resource):
    snapshots = []
    resource.subscribe(snapshots.append)
    return snapshots


class TestColdStart:
    """Tests for activation with no cache entry."""

    @pytest.mark.asyncio
    async def test_cold_start_fetches_and_caches(self, store, banks_cache, audit):
        """Test that a miss fetches, shows loading, then goes live."""
        banks = make_banks(store, banks_cache, audit)
        snapshots = record_snapshots(banks)

        await banks.activate()

        assert banks.hydration_state is HydrationState.LIVE
        assert banks.loading is False
        assert banks.is_from_cache is False
        assert [b.name for b in banks.items] == ["Nubank", "Caixa"]
        assert snapshots[0].hydration_state is HydrationState.COLD
        assert snapshots[0].loading is True
        assert banks_cache.get().data[0]["name"] == "Nubank"
        assert store.call_count("list", Collection.BANKS) == 1

    @pytest.mark.asyncio
    async def test_cache_stores_normalized_data(self, store, banks_cache, audit):
        """Test that defaults are applied before caching."""
        await make_banks(store, banks_cache, audit).activate()
        assert banks_cache.get().data[1]["color"] == "#6366f1"

    @pytest.mark.asyncio
    async def test_invalid_cache_entry_is_a_miss(self, store, banks_cache, audit):
        """Test that an entry of the wrong shape is refetched."""
        banks_cache.set("not a list of banks")
        banks = make_banks(store, banks_cache, audit)

        await banks.activate()

        assert banks.hydration_state is HydrationState.LIVE
        assert len(banks.items) == 2


class TestFreshHit:
    """Tests for activation with a fresh cache entry."""

    @pytest.mark.asyncio
    async def test_fresh_hit_does_not_fetch(self, store, banks_cache, audit):
        """Test that a fresh entry is rendered without a fetch."""
        banks_cache.set(CACHED_BANKS)
        banks = make_banks(store, banks_cache, audit)

        await banks.activate()

        assert banks.hydration_state is HydrationState.CACHED_FRESH
        assert banks.is_from_cache is True
        assert banks.items == [Bank(id=9, name="Itau", color="#ec7000")]
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_no_spinner_on_fresh_hit(self, store, banks_cache, audit):
        """Test that loading is never observed True on a fresh hit."""
        banks_cache.set(CACHED_BANKS)
        banks = make_banks(store, banks_cache, audit)
        snapshots = record_snapshots(banks)

        assert banks.loading is False
        await banks.activate()

        assert snapshots
        assert all(s.loading is False for s in snapshots)


class TestStaleHit:
    """Tests for stale-while-revalidate."""

    @pytest.mark.asyncio
    async def test_stale_hit_renders_then_revalidates(self, store, banks_cache, audit, clock):
        """Test that stale data is shown and replaced in the background."""
        banks_cache.set(CACHED_BANKS)
        clock.advance(seconds=3600)
        banks = make_banks(store, banks_cache, audit)
        snapshots = record_snapshots(banks)

        await banks.activate()

        assert banks.hydration_state is HydrationState.CACHED_STALE
        assert banks.items[0].name == "Itau"
        assert banks.is_from_cache is True

        await banks.wait_for_revalidation()

        assert banks.hydration_state is HydrationState.LIVE
        assert banks.is_from_cache is False
        assert [b.name for b in banks.items] == ["Nubank", "Caixa"]
        assert all(s.loading is False for s in snapshots)
        assert banks_cache.has_fresh() is True

    @pytest.mark.asyncio
    async def test_failed_revalidation_keeps_stale_data(self, store, banks_cache, audit, clock):
        """Test that a failed background load keeps what is shown."""
        banks_cache.set(CACHED_BANKS)
        clock.advance(seconds=3600)
        store.fail("list", BackendError("db down"))
        banks = make_banks(store, banks_cache, audit)

        await banks.activate()
        await banks.wait_for_revalidation()

        assert banks.items[0].name == "Itau"
        assert isinstance(banks.error, BackendCallError)
        assert banks.hydration_state is HydrationState.CACHED_STALE


class TestActivation:
    """Tests for idempotent activation."""

    @pytest.mark.asyncio
    async def test_double_activation_fetches_once(self, store, banks_cache, audit):
        """Test that a second activate is a no-op."""
        banks = make_banks(store, banks_cache, audit)

        await asyncio.gather(banks.activate(), banks.activate())
        await banks.activate()

        assert store.call_count("list", Collection.BANKS) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self, store, banks_cache, audit):
        """Test that an unsubscribed listener gets nothing."""
        banks = make_banks(store, banks_cache, audit)
        snapshots = []
        unsubscribe = banks.subscribe(snapshots.append)
        unsubscribe()

        await banks.activate()

        assert snapshots == []


class TestLoadFailures:
    """Tests for error handling during loads."""

    @pytest.mark.asyncio
    async def test_cold_failure_resolves_to_empty(self, store, banks_cache, audit):
        """Test that a failed first load shows an empty list and the error."""
        store.fail("list", BackendError("db down"))
        banks = make_banks(store, banks_cache, audit)

        await banks.activate()

        assert banks.data == []
        assert banks.loading is False
        assert isinstance(banks.error, BackendCallError)
        assert banks_cache.get() is None

    @pytest.mark.asyncio
    async def test_refresh_failure_keeps_data(self, store, banks_cache, audit):
        """Test that a failed refresh keeps the loaded data."""
        banks = make_banks(store, banks_cache, audit)
        await banks.activate()

        store.fail("list", BackendError("db down"))
        result = await banks.refresh()

        assert result.ok is False
        assert len(banks.items) == 2
        assert banks.error is result.error

    @pytest.mark.asyncio
    async def test_numeric_error_code(self, store, banks_cache, audit):
        """Test that an HTTP status code on the error is surfaced and logged."""
        class ServiceUnavailable(Exception):
            code = 503

        banks = make_banks(store, banks_cache, audit)
        await banks.activate()
        store.fail("list", ServiceUnavailable("service unavailable"))

        result = await banks.load()

        assert isinstance(result.error, BackendCallError)
        assert banks.loading is False
        assert len(banks.items) == 2
        [event] = [
            e for e in audit.recent_events(resource="banks")
            if e.event_type is ResourceEventType.LOAD_FAILED
        ]
        assert event.error_code == "503"

    @pytest.mark.asyncio
    async def test_stale_revalidation_with_numeric_error_code(
        self, store, banks_cache, audit, clock
    ):
        """Test that a background revalidation failure still settles."""
        class ServiceUnavailable(Exception):
            code = 503

        banks_cache.set(CACHED_BANKS)
        clock.advance(seconds=3600)
        store.fail("list", ServiceUnavailable("service unavailable"))
        banks = make_banks(store, banks_cache, audit)

        await banks.activate()
        await banks.wait_for_revalidation()

        assert isinstance(banks.error, BackendCallError)
        assert banks.loading is False
        assert [b.name for b in banks.items] == ["Itau"]

    @pytest.mark.asyncio
    async def test_successful_load_clears_error(self, store, banks_cache, audit):
        """Test that the next successful load clears a previous error."""
        store.fail("list", BackendError("db down"))
        banks = make_banks(store, banks_cache, audit)
        await banks.activate()

        result = await banks.refresh()

        assert result.ok is True
        assert banks.error is None
        assert banks.hydration_state is HydrationState.LIVE

    @pytest.mark.asyncio
    async def test_timeout(self, banks_cache, audit):
        """Test that a timeout is recorded and logged."""
        slow_store = InMemoryRecordStore({"banks": [{"id": 1}]}, latency=0.05)
        banks = make_banks(slow_store, banks_cache, audit, timeout=0.01)

        await banks.activate()

        assert isinstance(banks.error, LoaderTimeoutError)
        assert banks.data == []
        types = [e.event_type for e in audit.recent_events(resource="banks")]
        assert ResourceEventType.LOAD_TIMED_OUT in types
        await asyncio.sleep(0.06)

    @pytest.mark.asyncio
    async def test_auth_required_forces_logout(self, store, banks_cache, audit, auth_events):
        """Test that AUTH_REQUIRED calls the handler and writes no cache."""
        store.sign_out()
        banks = make_banks(store, banks_cache, audit, auth_events)

        await banks.activate()

        assert isinstance(banks.error, AuthenticationRequiredError)
        assert len(auth_events.events) == 1
        assert banks_cache.get() is None
        assert banks.hydration_state is HydrationState.COLD

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_break_load(self, store, banks_cache, audit):
        """Test that an exception in the logout handler is contained."""
        def broken_handler(error):
            raise RuntimeError("navigation failed")

        store.sign_out()
        banks = make_banks(store, banks_cache, audit, broken_handler)

        result = await banks.activate()

        assert result is None
        assert isinstance(banks.error, AuthenticationRequiredError)


class TestRefreshAndDispose:
    """Tests for refresh variants and cooperative cancellation."""

    @pytest.mark.asyncio
    async def test_force_refresh_shows_loading(self, store, banks_cache, audit):
        """Test that force_refresh clears the entry and loads with spinner."""
        banks_cache.set(CACHED_BANKS)
        banks = make_banks(store, banks_cache, audit)
        await banks.activate()
        snapshots = record_snapshots(banks)

        await banks.force_refresh()

        assert any(s.loading for s in snapshots)
        assert [b.name for b in banks.items] == ["Nubank", "Caixa"]
        assert store.call_count("list", Collection.BANKS) == 1

    @pytest.mark.asyncio
    async def test_invalidate_only_clears_entry(self, store, banks_cache, audit):
        """Test that invalidate keeps in-memory data."""
        banks = make_banks(store, banks_cache, audit)
        await banks.activate()

        banks.invalidate()

        assert banks_cache.get() is None
        assert len(banks.items) == 2

    @pytest.mark.asyncio
    async def test_result_after_dispose_is_discarded(self, banks_cache, audit):
        """Test that a fetch completing after dispose touches nothing."""
        slow_store = InMemoryRecordStore({"banks": [{"id": 1, "name": "Inter"}]}, latency=0.02)
        banks = make_banks(slow_store, banks_cache, audit)
        snapshots = record_snapshots(banks)

        task = asyncio.ensure_future(banks.activate())
        await asyncio.sleep(0)
        count_before = len(snapshots)
        banks.dispose()
        await task

        assert banks.disposed is True
        assert banks.data is None
        assert len(snapshots) == count_before
        assert banks_cache.get() is None
        types = [e.event_type for e in audit.recent_events(resource="banks")]
        assert ResourceEventType.LOAD_DISCARDED in types

    @pytest.mark.asyncio
    async def test_activate_after_dispose_does_nothing(self, store, banks_cache, audit):
        """Test that a disposed resource never fetches."""
        banks = make_banks(store, banks_cache, audit)
        banks.dispose()

        await banks.activate()

        assert store.calls == []
        assert banks.hydration_state is HydrationState.IDLE
