"""
Shared fixtures for fincache tests.

No real backend and no real browser storage: every test runs against an
in-memory record store, in-memory tab storage and a fake clock.
"""

import asyncio

import pytest

from fincache.audit import ResourceAuditLogger
from fincache.cache import TabScopedCache
from fincache.services.session import InMemorySessionService
from fincache.services.storage import InMemoryRecordStore, InMemoryTabStorage


START_MS = 1_710_000_000_000  # 2024-03-09


class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, now: int = START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float = 0, ms: int = 0) -> None:
        self.now += int(seconds * 1000) + ms


class HangingSessionService(InMemorySessionService):
    """Session service whose user lookup blocks until released."""

    def __init__(self):
        super().__init__(user={"id": "u-1"})
        self.release = asyncio.Event()

    async def get_current_user(self):
        await self.release.wait()
        return await super().get_current_user()


SAMPLE_RECORDS = {
    "transactions": [
        {
            "id": 1,
            "description": "Mercado",
            "amount": -120,
            "transaction_date": "2024-03-05",
            "transaction_type_internal_name": "expense",
            "category_id": 10,
            "category_name": "Food",
        },
        {
            "id": 2,
            "description": "Salario",
            "amount": 2000,
            "transaction_date": "2024-03-20",
            "transaction_type_internal_name": "income",
        },
        {
            "id": 3,
            "description": "Farmacia",
            "amount": -80,
            "transaction_date": "2024-02-01",
            "transaction_type_internal_name": "expense",
        },
    ],
    "categories": [
        {"id": 10, "name": "Food", "color": "#ff0000", "icon": "Utensils"},
        {"id": 11, "name": "Salary"},
    ],
    "assets": [
        {"id": 1, "name": "Reserva", "value": 5000, "valuation_date": "2024-03-01"},
        {"id": 2, "name": "Carro vendido", "value": 9000, "is_deleted": True},
    ],
    "banks": [
        {"id": 1, "name": "Nubank", "color": "#8a05be"},
        {"id": 2, "name": "Caixa"},
    ],
    "cards": [
        {"id": 1, "name": "Roxinho", "bank_id": 1},
    ],
    "budgets": [
        {"id": 1, "category_id": 10, "year": 2024, "month": 3,
         "limit_amount": 500, "spent_amount": 120},
        {"id": 2, "category_id": 12, "year": 2024, "month": 3,
         "limit_amount": 300, "spent_amount": 0, "alert_percentage": 80},
        {"id": 3, "category_id": 10, "year": 2024, "month": 2,
         "limit_amount": 450, "spent_amount": 80},
    ],
    "account_members": [
        {"id": 1, "name": "Ana", "email": "ana@example.com"},
    ],
    "transaction_types": [
        {"id": 1, "name": "Receita", "internal_name": "income"},
        {"id": 2, "name": "Despesa", "internal_name": "expense"},
    ],
    "icons": [
        {"id": 1, "name": "Tag"},
    ],
}

SAMPLE_SETTINGS = {
    "full_name": "Ana Souza",
    "email": "ana@example.com",
    "currency": "BRL",
    "subscription_status": "trial",
    "trial_ends_at": "2024-03-20T00:00:00+00:00",
}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return InMemoryTabStorage()


@pytest.fixture
def store():
    return InMemoryRecordStore(SAMPLE_RECORDS, user_settings=SAMPLE_SETTINGS)


@pytest.fixture
def audit():
    return ResourceAuditLogger()


@pytest.fixture
def make_cache(storage, clock):
    """Build a TabScopedCache over the shared storage and fake clock."""
    def factory(prefix: str, **kwargs) -> TabScopedCache:
        return TabScopedCache(storage, prefix, clock=clock, **kwargs)
    return factory


@pytest.fixture
def auth_events():
    """Records every forced-logout call a resource makes."""
    events = []

    def handler(error: BaseException) -> None:
        events.append(error)

    handler.events = events
    return handler


@pytest.fixture
async def hanging_session_service():
    service = HangingSessionService()
    yield service
    # Let the abandoned session checks finish
    service.release.set()
    await asyncio.sleep(0.01)
