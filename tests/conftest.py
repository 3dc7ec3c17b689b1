"""Pytest fixtures for testing"""

import itertools
from datetime import date, datetime, timedelta, timezone
from typing import AsyncGenerator, Callable, List

import httpx
import pytest

from ledger_sync.domain.models import Transaction, TransactionKind
from ledger_sync.infrastructure.cache.store import CacheStore
from ledger_sync.infrastructure.clients.debts import DebtsClient
from ledger_sync.infrastructure.clients.transport import ApiTransport
from ledger_sync.infrastructure.database.session import create_session_factory
from ledger_sync.infrastructure.sync.queue import SyncQueueRepository
from mock_services.ledger_server.main import LedgerState, create_app

AS_OF = date(2024, 6, 30)
MOCK_BASE_URL = "http://ledger.test/api"


@pytest.fixture
def as_of() -> date:
    """Fixed report date"""
    return AS_OF


@pytest.fixture
def make_transaction() -> Callable[..., Transaction]:
    """Factory for committed transactions dated relative to AS_OF"""
    counter = itertools.count(1)

    def _make(
        kind: TransactionKind,
        amount_cents: int,
        days_ago: int = 0,
        customer_id: str = "cust_1",
        quantity: int | None = None,
        unit_price_cents: int | None = None,
    ) -> Transaction:
        n = next(counter)
        occurred = datetime.combine(AS_OF - timedelta(days=days_ago), datetime.min.time(), tzinfo=timezone.utc)
        return Transaction(
            id=f"txn_{n}",
            customer_id=customer_id,
            kind=kind,
            amount_cents=amount_cents,
            occurred_at=occurred,
            created_at=occurred + timedelta(seconds=n),
            quantity=quantity,
            unit_price_cents=unit_price_cents,
        )

    return _make


@pytest.fixture
def aged_charges(make_transaction) -> List[Transaction]:
    """One 100.00 charge in each aging bucket"""
    return [
        make_transaction(TransactionKind.CHARGE, 10000, days_ago=age)
        for age in (10, 45, 75, 100)
    ]


@pytest.fixture
def sleeps() -> List[float]:
    """Backoff delays requested by code under test, in seconds"""
    return []


@pytest.fixture
def fake_sleep(sleeps: List[float]):
    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return _sleep


@pytest.fixture
def queue_repo(tmp_path) -> SyncQueueRepository:
    """Durable queue on a throwaway SQLite file"""
    return SyncQueueRepository(create_session_factory(f"sqlite:///{tmp_path / 'queue.db'}"))


@pytest.fixture
def cache() -> CacheStore:
    return CacheStore(stale_after=timedelta(seconds=30), gc_after=timedelta(minutes=5))


@pytest.fixture
def ledger_state() -> LedgerState:
    """Mock ledger seeded with two customers and a little history"""
    state = LedgerState()
    state.add_customer("cust_1", "Ana Lopez")
    state.add_customer("cust_2", "Ben Ortiz")
    today = date.today()
    state.add_transaction("cust_1", TransactionKind.CHARGE, 5000, today - timedelta(days=5), quantity=5, unit_price_cents=1000)
    state.add_transaction("cust_2", TransactionKind.CHARGE, 2000, today - timedelta(days=40))
    return state


@pytest.fixture
def mock_app(ledger_state: LedgerState):
    return create_app(ledger_state)


@pytest.fixture
async def api_transport(mock_app) -> AsyncGenerator[ApiTransport, None]:
    """Real transport talking to the in-process mock ledger"""
    transport = ApiTransport(base_url=MOCK_BASE_URL, transport=httpx.ASGITransport(app=mock_app))
    try:
        yield transport
    finally:
        await transport.aclose()


@pytest.fixture
def debts_client(api_transport: ApiTransport) -> DebtsClient:
    return DebtsClient(api_transport)
