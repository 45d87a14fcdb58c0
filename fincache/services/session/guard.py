"""
Session Guard

Loaders ask the guard for the current user before fetching. The guard
caches a verified user for a short TTL so a burst of parallel loads
costs one session check, not one per resource.
"""

import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import structlog

from fincache.resources.loader import AuthenticationRequiredError
from fincache.services.storage.interface import BackendError, BackendResult


DEFAULT_AUTH_CACHE_TTL_SECONDS = 60.0


class SessionServiceInterface(ABC):
    """Abstract interface for the authentication service."""

    @abstractmethod
    async def get_current_user(self) -> BackendResult:
        """
        Get the signed-in user.

        Returns:
            BackendResult with the user, or with an AUTH_REQUIRED error
            (or no data) when there is no valid session
        """
        pass

    @abstractmethod
    async def sign_out(self) -> BackendResult:
        """End the session on the authentication service."""
        pass


class InMemorySessionService(SessionServiceInterface):
    """Session service holding a user in memory (offline use and tests)."""

    def __init__(self, user: Optional[dict[str, Any]] = None):
        self.user = user
        self.checks = 0

    def sign_in(self, user: dict[str, Any]) -> None:
        self.user = user

    async def sign_out(self) -> BackendResult:
        self.user = None
        return BackendResult.success(None)

    async def get_current_user(self) -> BackendResult:
        self.checks += 1
        if self.user is None:
            return BackendResult.failure(BackendError.auth_required("No active session"))
        return BackendResult.success(dict(self.user))


class SessionGuard:
    """
    Cached "is someone signed in" check.

    Usage:
        guard = SessionGuard(session_service, ttl_seconds=60)
        user = await guard.ensure_user()  # raises AuthenticationRequiredError
    """

    def __init__(
        self,
        service: SessionServiceInterface,
        ttl_seconds: float = DEFAULT_AUTH_CACHE_TTL_SECONDS,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._service = service
        self.ttl_seconds = ttl_seconds
        self._clock = clock or time.monotonic
        self._user: Optional[Any] = None
        self._checked_at: Optional[float] = None
        self._logger = structlog.get_logger(__name__)

    @property
    def cached_user(self) -> Optional[Any]:
        return self._user

    async def ensure_user(self) -> Any:
        """
        Return the current user, checking the session at most once per TTL.

        Raises:
            AuthenticationRequiredError: If there is no valid session
        """
        now = self._clock()
        if (
            self._user is not None
            and self._checked_at is not None
            and now - self._checked_at < self.ttl_seconds
        ):
            return self._user

        try:
            result = await self._service.get_current_user()
        except Exception as e:
            self.clear()
            self._logger.warning("session_check_failed", error=str(e))
            raise AuthenticationRequiredError(
                f"Session check failed: {e}", cause=e
            ) from e

        if result.error is not None or result.data is None:
            self.clear()
            message = str(result.error) if result.error else "No active session"
            self._logger.info("session_missing", reason=message)
            raise AuthenticationRequiredError(message, cause=result.error)

        self._user = result.data
        self._checked_at = now
        return self._user

    def clear(self) -> None:
        """Forget the cached user."""
        self._user = None
        self._checked_at = None
