"""Session services package."""

from fincache.services.session.guard import (
    InMemorySessionService,
    SessionGuard,
    SessionServiceInterface,
)

__all__ = [
    "InMemorySessionService",
    "SessionGuard",
    "SessionServiceInterface",
]
