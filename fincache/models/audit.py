"""
Resource Event Models

Every significant step a resource takes (cache read, fetch, mutation,
rollback, forced logout) is described by a ResourceEvent.
This provides:
1. Traceability of why a view showed what it showed
2. Debugging information when revalidation and mutations interleave
3. A hook for tests to assert on protocol behaviour

DESIGN DECISION: Events are append-only and never mutated.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class ResourceEventType(str, Enum):
    """Types of events we record."""
    # Hydration
    CACHE_HIT = "cache_hit"
    CACHE_STALE = "cache_stale"
    CACHE_MISS = "cache_miss"
    CACHE_WRITE_FAILED = "cache_write_failed"
    REVALIDATION_STARTED = "revalidation_started"

    # Loading
    LOAD_SUCCEEDED = "load_succeeded"
    LOAD_FAILED = "load_failed"
    LOAD_TIMED_OUT = "load_timed_out"
    LOAD_DISCARDED = "load_discarded"

    # Mutations
    MUTATION_SUCCEEDED = "mutation_succeeded"
    MUTATION_FAILED = "mutation_failed"
    MUTATION_ROLLED_BACK = "mutation_rolled_back"
    CACHE_INVALIDATED = "cache_invalidated"

    # Session
    AUTH_REQUIRED = "auth_required"
    SESSION_LOGGED_OUT = "session_logged_out"

    # Prefetch
    PREFETCH_COMPLETED = "prefetch_completed"
    PREFETCH_FAILED = "prefetch_failed"


class ResourceEventSeverity(str, Enum):
    """Severity level for resource events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ResourceEvent(BaseModel):
    """A single resource lifecycle event."""

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )
    event_type: ResourceEventType
    severity: ResourceEventSeverity = ResourceEventSeverity.INFO

    resource: str = Field(
        ...,
        description="Resource name (e.g. 'transactions', 'dashboard')"
    )
    cache_key: Optional[str] = Field(
        default=None,
        description="Storage key involved, when relevant"
    )
    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "resource": self.resource,
            "cache_key": self.cache_key,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


def _error_fields(error: BaseException) -> dict:
    # Backends may use int status codes
    code = getattr(error, "code", None)
    return {
        "error_code": str(code) if code is not None else None,
        "error_message": str(error) or type(error).__name__,
    }


class ResourceEventBuilder:
    """
    Helper class to build resource events with common patterns.

    Usage:
        event = ResourceEventBuilder.cache_hit("banks", "banks_cache", is_stale=False)
        event = ResourceEventBuilder.rolled_back("budgets", "update", error)
    """

    @staticmethod
    def cache_hit(resource: str, cache_key: str, is_stale: bool) -> ResourceEvent:
        return ResourceEvent(
            event_type=(
                ResourceEventType.CACHE_STALE if is_stale
                else ResourceEventType.CACHE_HIT
            ),
            severity=ResourceEventSeverity.DEBUG,
            resource=resource,
            cache_key=cache_key,
            description=(
                "Rendering stale cached data, revalidating in background" if is_stale
                else "Rendering fresh cached data"
            ),
        )

    @staticmethod
    def cache_miss(resource: str, cache_key: str) -> ResourceEvent:
        return ResourceEvent(
            event_type=ResourceEventType.CACHE_MISS,
            severity=ResourceEventSeverity.DEBUG,
            resource=resource,
            cache_key=cache_key,
            description="No cached data, loading cold",
        )

    @staticmethod
    def revalidation_started(resource: str, cache_key: str) -> ResourceEvent:
        return ResourceEvent(
            event_type=ResourceEventType.REVALIDATION_STARTED,
            severity=ResourceEventSeverity.DEBUG,
            resource=resource,
            cache_key=cache_key,
            description="Background revalidation started",
        )

    @staticmethod
    def load_succeeded(resource: str, cache_key: str, item_count: Optional[int]) -> ResourceEvent:
        return ResourceEvent(
            event_type=ResourceEventType.LOAD_SUCCEEDED,
            resource=resource,
            cache_key=cache_key,
            description="Fresh data applied and cached",
            details={"item_count": item_count},
        )

    @staticmethod
    def load_failed(resource: str, error: BaseException) -> ResourceEvent:
        return ResourceEvent(
            event_type=ResourceEventType.LOAD_FAILED,
            severity=ResourceEventSeverity.ERROR,
            resource=resource,
            description="Load failed, keeping previously displayed data",
            **_error_fields(error),
        )

    @staticmethod
    def load_timed_out(resource: str, timeout: Optional[float]) -> ResourceEvent:
        return ResourceEvent(
            event_type=ResourceEventType.LOAD_TIMED_OUT,
            severity=ResourceEventSeverity.WARNING,
            resource=resource,
            description=(
                f"Load timed out after {timeout:g}s" if timeout is not None
                else "Load timed out"
            ),
            details={"timeout_seconds": timeout},
        )

    @staticmethod
    def load_discarded(resource: str) -> ResourceEvent:
        return ResourceEvent(
            event_type=ResourceEventType.LOAD_DISCARDED,
            severity=ResourceEventSeverity.DEBUG,
            resource=resource,
            description="Result arrived after the resource was disposed",
        )

    @staticmethod
    def mutation_succeeded(resource: str, operation: str, strategy: str) -> ResourceEvent:
        return ResourceEvent(
            event_type=ResourceEventType.MUTATION_SUCCEEDED,
            resource=resource,
            description=f"{operation} succeeded",
            details={"operation": operation, "strategy": strategy},
        )

    @staticmethod
    def mutation_failed(resource: str, operation: str, error: BaseException) -> ResourceEvent:
        return ResourceEvent(
            event_type=ResourceEventType.MUTATION_FAILED,
            severity=ResourceEventSeverity.ERROR,
            resource=resource,
            description=f"{operation} failed",
            details={"operation": operation},
            **_error_fields(error),
        )

    @staticmethod
    def rolled_back(resource: str, operation: str, error: BaseException) -> ResourceEvent:
        return ResourceEvent(
            event_type=ResourceEventType.MUTATION_ROLLED_BACK,
            severity=ResourceEventSeverity.WARNING,
            resource=resource,
            description=f"{operation} failed, optimistic change rolled back",
            details={"operation": operation},
            **_error_fields(error),
        )

    @staticmethod
    def cache_invalidated(resource: str, cache_key: str) -> ResourceEvent:
        return ResourceEvent(
            event_type=ResourceEventType.CACHE_INVALIDATED,
            severity=ResourceEventSeverity.DEBUG,
            resource=resource,
            cache_key=cache_key,
            description="Cache entry invalidated",
        )

    @staticmethod
    def cache_write_failed(resource: str, cache_key: str, reason: str) -> ResourceEvent:
        return ResourceEvent(
            event_type=ResourceEventType.CACHE_WRITE_FAILED,
            severity=ResourceEventSeverity.WARNING,
            resource=resource,
            cache_key=cache_key,
            description="Cache write skipped",
            details={"reason": reason},
        )

    @staticmethod
    def auth_required(resource: str, error: BaseException) -> ResourceEvent:
        return ResourceEvent(
            event_type=ResourceEventType.AUTH_REQUIRED,
            severity=ResourceEventSeverity.WARNING,
            resource=resource,
            description="Backend requires re-authentication, forcing logout",
            **_error_fields(error),
        )

    @staticmethod
    def logged_out(reason: str, cleared_namespaces: list[str]) -> ResourceEvent:
        return ResourceEvent(
            event_type=ResourceEventType.SESSION_LOGGED_OUT,
            resource="session",
            description="Session ended",
            details={"reason": reason, "cleared_namespaces": cleared_namespaces},
        )

    @staticmethod
    def prefetch_completed(resource: str, cache_key: str, skipped: bool) -> ResourceEvent:
        return ResourceEvent(
            event_type=ResourceEventType.PREFETCH_COMPLETED,
            severity=ResourceEventSeverity.DEBUG,
            resource=resource,
            cache_key=cache_key,
            description="Fresh entry already cached" if skipped else "Cache warmed",
            details={"skipped": skipped},
        )

    @staticmethod
    def prefetch_failed(route: str, error: BaseException) -> ResourceEvent:
        return ResourceEvent(
            event_type=ResourceEventType.PREFETCH_FAILED,
            severity=ResourceEventSeverity.WARNING,
            resource="prefetch",
            description=f"Prefetch failed for {route}",
            details={"route": route},
            **_error_fields(error),
        )
