"""
Resource Audit Logger

DESIGN DECISION: Every significant resource step is logged.
This provides:
1. Traceability of cache hits, revalidations and rollbacks
2. Debugging capability when background loads race with mutations
3. A recent-events history tests and diagnostics can inspect

The audit logger:
- Is synchronous, so it can be called from state transitions
- Gracefully handles failures (never crashes the caller if logging fails)
- Keeps a bounded in-memory history
"""

from collections import deque
from typing import Any, Callable, Optional

import structlog

from fincache.models.audit import ResourceEvent, ResourceEventBuilder


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class ResourceAuditLogger:
    """
    Central resource event logger.

    Logs events both to:
    1. Structured local log (for debugging)
    2. A bounded in-memory history (for inspection)
    """

    def __init__(self, history_size: int = 500):
        """
        Initialize audit logger.

        Args:
            history_size: Number of most recent events kept in memory.
        """
        self._history: deque[ResourceEvent] = deque(maxlen=history_size)
        self._logger = structlog.get_logger(__name__)

    def log(self, event: ResourceEvent) -> bool:
        """
        Log a resource event.

        Always records the event in history and logs locally.
        Returns False if the local log write failed.
        """
        self._history.append(event)

        log_dict = event.to_log_dict()
        try:
            if event.severity.value == "error":
                self._logger.error("resource_event", **log_dict)
            elif event.severity.value == "warning":
                self._logger.warning("resource_event", **log_dict)
            elif event.severity.value == "debug":
                self._logger.debug("resource_event", **log_dict)
            else:
                self._logger.info("resource_event", **log_dict)
        except Exception:
            # Logging must never break a state transition
            return False

        return True

    def recent_events(
        self,
        limit: Optional[int] = None,
        resource: Optional[str] = None,
    ) -> list[ResourceEvent]:
        """Most recent events, oldest first, optionally for one resource."""
        events = [
            e for e in self._history
            if resource is None or e.resource == resource
        ]
        if limit is not None:
            events = events[-limit:] if limit > 0 else []
        return events

    def clear_history(self) -> None:
        self._history.clear()

    def _log_built(self, build: Callable[..., ResourceEvent], *args: Any, **kwargs: Any) -> bool:
        """Build an event and log it. A builder failure is logged, never raised."""
        try:
            event = build(*args, **kwargs)
        except Exception as e:
            self._logger.warning(
                "resource_event_invalid",
                builder=getattr(build, "__name__", repr(build)),
                error=str(e),
            )
            return False
        return self.log(event)

    def log_cache_read(
        self,
        resource: str,
        cache_key: str,
        hit: bool,
        is_stale: bool = False,
    ) -> None:
        """Log the outcome of the cache read that starts hydration."""
        if hit:
            self._log_built(ResourceEventBuilder.cache_hit, resource, cache_key, is_stale)
        else:
            self._log_built(ResourceEventBuilder.cache_miss, resource, cache_key)

    def log_load_failed(self, resource: str, error: BaseException) -> None:
        """Log a failed load."""
        self._log_built(ResourceEventBuilder.load_failed, resource, error)

    def log_load_timed_out(self, resource: str, timeout: Optional[float]) -> None:
        self._log_built(ResourceEventBuilder.load_timed_out, resource, timeout)

    def log_auth_required(self, resource: str, error: BaseException) -> None:
        self._log_built(ResourceEventBuilder.auth_required, resource, error)

    def log_mutation_failed(
        self,
        resource: str,
        operation: str,
        error: BaseException,
        rolled_back: bool,
    ) -> None:
        """Log a failed mutation, distinguishing optimistic rollbacks."""
        if rolled_back:
            self._log_built(ResourceEventBuilder.rolled_back, resource, operation, error)
        else:
            self._log_built(ResourceEventBuilder.mutation_failed, resource, operation, error)

    def log_logout(self, reason: str, cleared_namespaces: list[str]) -> None:
        """Log the end of a session."""
        self._log_built(ResourceEventBuilder.logged_out, reason, cleared_namespaces)

    def log_prefetch_failed(self, route: str, error: BaseException) -> None:
        self._log_built(ResourceEventBuilder.prefetch_failed, route, error)
