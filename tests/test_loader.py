"""
Tests for the resource loader: timeout race, fan-out, error
classification and normalization.
"""

import asyncio

import pytest

from fincache.resources.loader import (
    AuthenticationRequiredError,
    BackendCallError,
    LoaderTimeoutError,
    ResourceLoader,
    classify_error,
    normalize_banks,
    normalize_categories,
    normalize_transactions,
    run_in_parallel,
    with_timeout,
)
from fincache.services.session import InMemorySessionService, SessionGuard
from fincache.services.storage import (
    AUTH_REQUIRED,
    BackendError,
    BackendResult,
    Collection,
    InMemoryRecordStore,
)


class TestWithTimeout:
    """Tests for the timeout race."""

    @pytest.mark.asyncio
    async def test_returns_result_in_time(self):
        """Test that a fast awaitable wins the race."""
        async def fast():
            return 42

        assert await with_timeout(fast(), 1.0) == 42

    @pytest.mark.asyncio
    async def test_raises_on_expiry(self):
        """Test that a slow awaitable loses the race."""
        async def slow():
            await asyncio.sleep(0.05)

        with pytest.raises(LoaderTimeoutError) as exc_info:
            await with_timeout(slow(), 0.01, "too slow")
        await asyncio.sleep(0.06)

        assert exc_info.value.timeout == 0.01
        assert exc_info.value.code == "TIMEOUT"
        assert str(exc_info.value) == "too slow"

    @pytest.mark.asyncio
    async def test_timed_out_task_is_not_cancelled(self):
        """Test that the underlying request keeps running."""
        finished = []

        async def slow():
            await asyncio.sleep(0.05)
            finished.append(True)
            return "late"

        with pytest.raises(LoaderTimeoutError):
            await with_timeout(slow(), 0.01)

        await asyncio.sleep(0.1)
        assert finished == [True]

    @pytest.mark.asyncio
    async def test_inner_exception_propagates(self):
        """Test that a failure inside the time limit is raised as is."""
        async def broken():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await with_timeout(broken(), 1.0)


class TestRunInParallel:
    """Tests for all-settled fan-out."""

    @pytest.mark.asyncio
    async def test_all_settled_in_input_order(self):
        """Test that one failure does not abort the others."""
        async def ok():
            return BackendResult.success([1])

        async def reported():
            return BackendResult.failure(BackendError("nope"))

        async def raised():
            raise RuntimeError("boom")

        async def plain():
            return "raw"

        results = await run_in_parallel([ok(), reported(), raised(), plain()])

        assert results[0].data == [1]
        assert str(results[1].error) == "nope"
        assert isinstance(results[2].error, RuntimeError)
        assert results[3].data == "raw"
        assert [r.ok for r in results] == [True, False, False, True]

    @pytest.mark.asyncio
    async def test_runs_concurrently(self):
        """Test that fetches overlap instead of running one after another."""
        store = InMemoryRecordStore(latency=0.05)
        started = asyncio.get_running_loop().time()

        await run_in_parallel([
            store.list_records(Collection.BANKS),
            store.list_records(Collection.CARDS),
            store.list_records(Collection.ASSETS),
        ])

        assert asyncio.get_running_loop().time() - started < 0.14


class TestClassifyError:
    """Tests for the error taxonomy."""

    def test_auth_required(self):
        """Test that AUTH_REQUIRED maps to AuthenticationRequiredError."""
        error = classify_error(BackendError.auth_required())
        assert isinstance(error, AuthenticationRequiredError)
        assert error.code == AUTH_REQUIRED

    def test_backend_error_keeps_code(self):
        """Test that other backend errors keep their code and cause."""
        cause = BackendError("not found", code="NOT_FOUND")
        error = classify_error(cause)

        assert isinstance(error, BackendCallError)
        assert error.code == "NOT_FOUND"
        assert error.cause is cause

    def test_resource_errors_pass_through(self):
        """Test that already classified errors are returned unchanged."""
        original = LoaderTimeoutError("slow", timeout=1)
        assert classify_error(original) is original

    def test_exception_without_message(self):
        """Test that an empty message falls back to the type name."""
        assert str(classify_error(RuntimeError())) == "RuntimeError"


class TestNormalization:
    """Tests for per-resource field fallbacks."""

    def test_transactions_alternate_fields(self):
        """Test transaction_date and transaction_type_internal_name fallbacks."""
        [transaction] = normalize_transactions([{
            "id": 1,
            "amount": "-12.50",
            "transaction_date": "2024-03-05",
            "transaction_type_internal_name": "expense",
        }])

        assert transaction.date == "2024-03-05"
        assert transaction.type_internal_name == "expense"
        assert transaction.month == "2024-03"

    def test_transactions_canonical_fields_kept(self):
        """Test that canonical fields are used when alternates are missing."""
        [transaction] = normalize_transactions([{
            "date": "2024-01-31",
            "type_internal_name": "income",
        }])
        assert transaction.date == "2024-01-31"
        assert transaction.type_internal_name == "income"

    def test_category_defaults(self):
        """Test color, icon and type fallbacks of categories."""
        bare, legacy = normalize_categories([
            {"id": 1, "name": "Food", "emoji": ""},
            {"id": 2, "name": "Fun", "icon": "Gamepad", "type_id": 3, "color": "#123456"},
        ])

        assert bare.color == "#6366f1"
        assert bare.icon_name == "Tag"
        assert bare.emoji is None
        assert legacy.icon_name == "Gamepad"
        assert legacy.transaction_type_id == 3
        assert legacy.color == "#123456"

    def test_bank_color_default(self):
        """Test that banks without a color get the default."""
        [bank] = normalize_banks([{"id": 1, "name": "Caixa", "color": None}])
        assert bank.color == "#6366f1"

    def test_none_is_empty(self):
        """Test that missing data normalizes to an empty list."""
        assert normalize_transactions(None) == []


class TestResourceLoader:
    """Tests for fetch, classify and normalize."""

    @pytest.mark.asyncio
    async def test_fetch_normalizes(self, store):
        """Test a successful fetch."""
        loader = ResourceLoader(
            "banks", lambda: store.list_records(Collection.BANKS), normalize_banks
        )
        banks = await loader.fetch()

        assert [b.name for b in banks] == ["Nubank", "Caixa"]
        assert banks[1].color == "#6366f1"

    @pytest.mark.asyncio
    async def test_no_data_without_error_is_empty(self):
        """Test that data=None without error normalizes to empty."""
        async def nothing():
            return BackendResult(data=None, error=None)

        loader = ResourceLoader("banks", nothing, normalize_banks)
        assert await loader.fetch() == []

    @pytest.mark.asyncio
    async def test_auth_required(self, store):
        """Test that AUTH_REQUIRED raises AuthenticationRequiredError."""
        store.sign_out()
        loader = ResourceLoader(
            "banks", lambda: store.list_records(Collection.BANKS), normalize_banks
        )
        with pytest.raises(AuthenticationRequiredError):
            await loader.fetch()

    @pytest.mark.asyncio
    async def test_backend_error(self, store):
        """Test that other errors raise BackendCallError."""
        store.fail("list", BackendError("db down", code="500"), collection=Collection.BANKS)
        loader = ResourceLoader(
            "banks", lambda: store.list_records(Collection.BANKS), normalize_banks
        )
        with pytest.raises(BackendCallError) as exc_info:
            await loader.fetch()
        assert exc_info.value.code == "500"

    @pytest.mark.asyncio
    async def test_raised_exception_is_classified(self, store):
        """Test that an exception raised by the fetcher is wrapped."""
        store.fail("list", ConnectionError("offline"))
        loader = ResourceLoader(
            "banks", lambda: store.list_records(Collection.BANKS), normalize_banks
        )
        with pytest.raises(BackendCallError) as exc_info:
            await loader.fetch()
        assert isinstance(exc_info.value.cause, ConnectionError)

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Test that a slow backend raises LoaderTimeoutError."""
        slow_store = InMemoryRecordStore(latency=0.05)
        loader = ResourceLoader(
            "banks",
            lambda: slow_store.list_records(Collection.BANKS),
            normalize_banks,
            timeout=0.01,
        )
        with pytest.raises(LoaderTimeoutError):
            await loader.fetch()
        await asyncio.sleep(0.06)

    @pytest.mark.asyncio
    async def test_malformed_data(self):
        """Test that records failing validation raise BackendCallError."""
        async def garbage():
            return BackendResult.success([{"id": 1, "amount": "lots"}])

        loader = ResourceLoader("transactions", garbage, normalize_transactions)
        with pytest.raises(BackendCallError):
            await loader.fetch()

    @pytest.mark.asyncio
    async def test_session_checked_before_fetch(self, store):
        """Test that a missing session fails before the backend is called."""
        guard = SessionGuard(InMemorySessionService(user=None))
        loader = ResourceLoader(
            "banks",
            lambda: store.list_records(Collection.BANKS),
            normalize_banks,
            session_guard=guard,
        )
        with pytest.raises(AuthenticationRequiredError):
            await loader.fetch()
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_hanging_session_check_times_out(self, store, hanging_session_service):
        """Test that the session check runs under the fetch timeout."""
        loader = ResourceLoader(
            "banks",
            lambda: store.list_records(Collection.BANKS),
            normalize_banks,
            timeout=0.01,
            session_guard=SessionGuard(hanging_session_service),
        )
        with pytest.raises(LoaderTimeoutError):
            await asyncio.wait_for(loader.fetch(), 1.0)
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_session_check_timeout_without_fetch_timeout(self, store, hanging_session_service):
        """Test the separate session timeout of fetchers that time themselves."""
        loader = ResourceLoader(
            "reference_data",
            lambda: store.list_records(Collection.ICONS),
            normalize_banks,
            timeout=None,
            session_check_timeout=0.01,
            session_guard=SessionGuard(hanging_session_service),
        )
        with pytest.raises(LoaderTimeoutError):
            await asyncio.wait_for(loader.fetch(), 1.0)
