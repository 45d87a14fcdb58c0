"""
Resource Loader

Wraps a backend fetch for one resource:
1. Checks the session (when a guard is configured)
2. Races the fetch against a timeout
3. Classifies the outcome (auth required, timeout, backend error)
4. Normalizes raw records into validated models

DESIGN DECISION: Nothing here retries.
Auth-required is never retried, timeouts and backend errors surface to
the resource, which keeps whatever it was already showing.

A timed-out fetch is not cancelled. It keeps running and its eventual
result is discarded.
"""

import asyncio
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Generic,
    Iterable,
    Optional,
    TypeVar,
)

import structlog

from fincache.models.records import Asset, Bank, Budget, Card, Category, Transaction
from fincache.services.storage.interface import AUTH_REQUIRED, BackendResult

if TYPE_CHECKING:
    from fincache.services.session.guard import SessionGuard


T = TypeVar("T")

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_COLOR = "#6366f1"
DEFAULT_CATEGORY_ICON = "Tag"

logger = structlog.get_logger(__name__)


# =============================================================================
# TIMEOUT AND FAN-OUT
# =============================================================================

def _discard_result(task: asyncio.Future) -> None:
    # Retrieve the outcome so an abandoned failure is not reported as unhandled
    if not task.cancelled():
        task.exception()


async def with_timeout(
    awaitable: Awaitable[T],
    timeout: float,
    message: Optional[str] = None,
) -> T:
    """
    Await ``awaitable`` for at most ``timeout`` seconds.

    Raises:
        LoaderTimeoutError: If the timeout expires first. The underlying
                            task keeps running and its result is dropped.
    """
    task = asyncio.ensure_future(awaitable)
    done, _ = await asyncio.wait({task}, timeout=timeout)
    if task in done:
        return task.result()

    task.add_done_callback(_discard_result)
    raise LoaderTimeoutError(
        message or f"Request timed out after {timeout:g}s",
        timeout=timeout,
    )


async def _settle(awaitable: Awaitable[Any]) -> BackendResult:
    try:
        result = await awaitable
    except Exception as e:
        return BackendResult.failure(e)
    if isinstance(result, BackendResult):
        return result
    return BackendResult.success(result)


async def run_in_parallel(awaitables: Iterable[Awaitable[Any]]) -> list[BackendResult]:
    """
    Run fetches concurrently and wait for all of them to settle.

    Results come back in input order. A fetch that raises becomes a
    failed BackendResult instead of aborting the others.
    """
    return list(await asyncio.gather(*(_settle(a) for a in awaitables)))


def classify_error(error: BaseException) -> "ResourceError":
    """Map a backend error onto the resource error taxonomy."""
    if isinstance(error, ResourceError):
        return error
    message = str(error) or type(error).__name__
    if getattr(error, "code", None) == AUTH_REQUIRED:
        return AuthenticationRequiredError(message, cause=error)
    return BackendCallError(message, cause=error)


# =============================================================================
# NORMALIZATION
# =============================================================================

def normalize_transactions(rows: Optional[Iterable[dict]]) -> list[Transaction]:
    """Transactions may arrive with ``transaction_date`` and
    ``transaction_type_internal_name`` instead of the canonical fields."""
    return [
        Transaction.model_validate({
            **row,
            "date": row.get("transaction_date") or row.get("date"),
            "type_internal_name": (
                row.get("transaction_type_internal_name")
                or row.get("type_internal_name")
            ),
        })
        for row in rows or []
    ]


def normalize_assets(rows: Optional[Iterable[dict]]) -> list[Asset]:
    return [
        Asset.model_validate({
            **row,
            "date": row.get("valuation_date") or row.get("date"),
        })
        for row in rows or []
    ]


def normalize_categories(rows: Optional[Iterable[dict]]) -> list[Category]:
    return [
        Category.model_validate({
            **row,
            "color": row.get("color") or DEFAULT_COLOR,
            "icon_name": row.get("icon_name") or row.get("icon") or DEFAULT_CATEGORY_ICON,
            "transaction_type_id": row.get("transaction_type_id") or row.get("type_id"),
            "emoji": row.get("emoji") or None,
        })
        for row in rows or []
    ]


def normalize_budgets(rows: Optional[Iterable[dict]]) -> list[Budget]:
    return [Budget.model_validate(row) for row in rows or []]


def normalize_banks(rows: Optional[Iterable[dict]]) -> list[Bank]:
    return [
        Bank.model_validate({**row, "color": row.get("color") or DEFAULT_COLOR})
        for row in rows or []
    ]


def normalize_cards(rows: Optional[Iterable[dict]]) -> list[Card]:
    return [
        Card.model_validate({**row, "color": row.get("color") or DEFAULT_COLOR})
        for row in rows or []
    ]


# =============================================================================
# LOADER
# =============================================================================

class ResourceLoader(Generic[T]):
    """
    Fetch-with-timeout wrapper for one resource.

    Usage:
        loader = ResourceLoader(
            "banks",
            lambda: store.list_records(Collection.BANKS),
            normalize_banks,
        )
        banks = await loader.fetch()
    """

    def __init__(
        self,
        name: str,
        fetch: Callable[[], Awaitable[BackendResult]],
        normalize: Callable[[Any], T],
        *,
        timeout: Optional[float] = DEFAULT_TIMEOUT_SECONDS,
        session_guard: Optional["SessionGuard"] = None,
        session_check_timeout: Optional[float] = None,
    ):
        self.name = name
        self._fetch = fetch
        self._normalize = normalize
        self.timeout = timeout
        self._session_guard = session_guard
        self.session_check_timeout = session_check_timeout
        self._logger = logger.bind(resource=name)

    async def _check_session(self) -> None:
        if self._session_guard is not None:
            await self._session_guard.ensure_user()

    async def _checked_fetch(self) -> BackendResult:
        await self._check_session()
        return await self._fetch()

    async def fetch(self) -> T:
        """
        Fetch and normalize. The session check runs under the same
        timeout as the fetch.

        Raises:
            AuthenticationRequiredError: Session gone or backend said so
            LoaderTimeoutError: The fetch did not finish in time
            BackendCallError: Any other failure
        """
        try:
            if self.timeout is None:
                # Fetcher enforces its own timeouts
                if self.session_check_timeout is None:
                    await self._check_session()
                else:
                    await with_timeout(
                        self._check_session(),
                        self.session_check_timeout,
                        f"Timed out checking the session for {self.name} "
                        f"after {self.session_check_timeout:g}s",
                    )
                result = await self._fetch()
            else:
                result = await with_timeout(
                    self._checked_fetch(),
                    self.timeout,
                    f"Timed out loading {self.name} after {self.timeout:g}s",
                )
        except ResourceError:
            raise
        except Exception as e:
            raise classify_error(e) from e

        if result.error is not None:
            raise classify_error(result.error)

        try:
            return self._normalize(result.data)
        except Exception as e:
            self._logger.error("normalize_failed", error=str(e))
            raise BackendCallError(
                f"Malformed {self.name} data: {e}", cause=e
            ) from e


# =============================================================================
# EXCEPTIONS
# =============================================================================

class ResourceError(Exception):
    """Base exception for resource loading and mutation."""
    code: Optional[str] = None

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class AuthenticationRequiredError(ResourceError):
    """The session is gone. Never retried, forces a logout."""
    code = AUTH_REQUIRED


class LoaderTimeoutError(ResourceError):
    """A fetch did not complete in time."""
    code = "TIMEOUT"

    def __init__(self, message: str, timeout: Optional[float] = None):
        super().__init__(message)
        self.timeout = timeout


class BackendCallError(ResourceError):
    """The backend reported an error, or the call itself failed."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message, cause=cause)
        self.code = getattr(cause, "code", None)
