"""Unit tests for the offline sync coordinator"""

import asyncio
from typing import Dict, List

import pytest

from ledger_sync.domain.exceptions import (
    AuthorizationError,
    TransientServiceError,
    ValidationFailure,
)
from ledger_sync.domain.models import Mutation, MutationType
from ledger_sync.infrastructure.cache import keys
from ledger_sync.infrastructure.clients.retry import RetryPolicy
from ledger_sync.infrastructure.sync.connectivity import ConnectivityMonitor
from ledger_sync.infrastructure.sync.coordinator import MutationStatus, OfflineSyncCoordinator, ReplayReport, SyncConflict


class FakeDebtsClient:
    """Records every send; fails sends whose payload ref has queued errors"""

    def __init__(self):
        self.sent: List[Mutation] = []
        self.failures: Dict[str, List[Exception]] = {}
        self.in_flight = 0
        self.max_in_flight = 0
        self.before_send = None

    def fail(self, ref: str, *errors: Exception) -> None:
        self.failures[ref] = list(errors)

    def refs(self) -> List[str]:
        return [m.payload["ref"] for m in self.sent]

    async def send_mutation(self, mutation: Mutation):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.before_send is not None:
                await self.before_send(mutation)
            await asyncio.sleep(0)
            self.sent.append(mutation)
            errors = self.failures.get(mutation.payload["ref"])
            if errors:
                raise errors.pop(0)
            return None
        finally:
            self.in_flight -= 1


def _payment(ref: str, customer_id: str = "cust_1") -> Mutation:
    return Mutation(MutationType.PAYMENT, customer_id, {"ref": ref, "amount": 10.0})


@pytest.fixture
def client() -> FakeDebtsClient:
    return FakeDebtsClient()


@pytest.fixture
def conflicts() -> List[SyncConflict]:
    return []


@pytest.fixture
def halts() -> List[ReplayReport]:
    return []


@pytest.fixture
async def make_coordinator(client, queue_repo, cache, fake_sleep, conflicts, halts):
    created = []

    def _make(online: bool = True) -> OfflineSyncCoordinator:
        coordinator = OfflineSyncCoordinator(
            client=client,
            queue=queue_repo,
            cache=cache,
            connectivity=ConnectivityMonitor(host_reports_online=online),
            retry_policy=RetryPolicy(max_retries=2, backoff_base_ms=1000, backoff_cap_ms=30000),
            sleep=fake_sleep,
            on_replay_failure=conflicts.append,
            on_replay_halted=halts.append,
        )
        created.append(coordinator)
        return coordinator

    yield _make

    for coordinator in created:
        await coordinator.close()


async def test_offline_submit_is_queued(make_coordinator, client, queue_repo):
    coordinator = make_coordinator(online=False)

    result = await coordinator.submit(_payment("A"))

    assert result.status == MutationStatus.QUEUED
    assert result.local_id is not None
    assert queue_repo.count() == 1
    assert client.sent == []


async def test_online_submit_commits_and_invalidates(make_coordinator, client, cache):
    coordinator = make_coordinator(online=True)

    async def fetch():
        return "detail"

    await cache.read(keys.customer_detail("cust_1"), fetch)
    await cache.read(keys.customer_detail("cust_2"), fetch)

    result = await coordinator.submit(_payment("A"))

    assert result.status == MutationStatus.COMMITTED
    assert client.refs() == ["A"]
    assert cache.get_entry(keys.customer_detail("cust_1")).invalidated is True
    assert cache.get_entry(keys.customer_detail("cust_2")).invalidated is False


async def test_online_submit_failure_propagates(make_coordinator, client, cache, queue_repo):
    coordinator = make_coordinator(online=True)
    client.fail("A", ValidationFailure("Payment amount must be positive", 400))

    async def fetch():
        return "summary"

    await cache.read(keys.debt_summary(), fetch)

    with pytest.raises(ValidationFailure, match="must be positive"):
        await coordinator.submit(_payment("A"))

    assert queue_repo.count() == 0
    assert cache.get_entry(keys.debt_summary()).invalidated is False


async def test_online_submit_retries_transient_failure(make_coordinator, client, sleeps):
    coordinator = make_coordinator(online=True)
    client.fail("A", TransientServiceError("unavailable", 503))

    result = await coordinator.submit(_payment("A"))

    assert result.status == MutationStatus.COMMITTED
    assert client.refs() == ["A", "A"]
    assert sleeps == [2.0]


async def test_replay_skips_rejected_entry_and_continues(make_coordinator, client, queue_repo, conflicts):
    """Test FIFO [A, B, C] with B rejected: C is still attempted"""
    coordinator = make_coordinator(online=False)
    client.fail("B", ValidationFailure("Customer account is suspended", 400))
    for ref in ("A", "B", "C"):
        await coordinator.submit(_payment(ref))

    await coordinator.connectivity.set_online(True)

    assert client.refs() == ["A", "B", "C"]
    assert queue_repo.count() == 0
    assert len(conflicts) == 1
    assert conflicts[0].entry.mutation.payload["ref"] == "B"
    assert conflicts[0].error.message == "Customer account is suspended"


async def test_transient_failure_halts_replay(make_coordinator, client, queue_repo, sleeps):
    for ref in ("A", "B", "C"):
        queue_repo.enqueue(_payment(ref))
    client.fail("B", *(TransientServiceError("unavailable", 503) for _ in range(3)))
    coordinator = make_coordinator(online=True)

    report = await coordinator.drain()

    assert report.halted
    assert isinstance(report.halted_by, TransientServiceError)
    assert [e.mutation.payload["ref"] for e in report.committed] == ["A"]
    assert report.remaining == 2
    assert report.reconciled is False
    assert client.refs() == ["A", "B", "B", "B"]
    assert sleeps == [2.0, 4.0]

    remaining = queue_repo.list_entries()
    assert [e.mutation.payload["ref"] for e in remaining] == ["B", "C"]
    assert remaining[0].attempt == 3


async def test_authorization_failure_halts_without_retry(make_coordinator, client, queue_repo, sleeps):
    for ref in ("A", "B"):
        queue_repo.enqueue(_payment(ref))
    client.fail("A", AuthorizationError("Session expired", 401))
    coordinator = make_coordinator(online=True)

    report = await coordinator.drain()

    assert isinstance(report.halted_by, AuthorizationError)
    assert report.remaining == 2
    assert sleeps == []


async def test_replay_resumes_after_halt(make_coordinator, client, queue_repo):
    for ref in ("A", "B"):
        queue_repo.enqueue(_payment(ref))
    client.fail("A", AuthorizationError("Session expired", 401))
    coordinator = make_coordinator(online=True)

    await coordinator.drain()
    report = await coordinator.drain()

    assert [e.mutation.payload["ref"] for e in report.committed] == ["A", "B"]
    assert report.remaining == 0
    assert report.reconciled is True


async def test_going_offline_stops_replay(make_coordinator, client, queue_repo):
    for ref in ("A", "B", "C"):
        queue_repo.enqueue(_payment(ref))
    coordinator = make_coordinator(online=True)

    async def drop_connection(mutation):
        if mutation.payload["ref"] == "A":
            await coordinator.connectivity.set_online(False)

    client.before_send = drop_connection
    report = await coordinator.drain()

    assert client.refs() == ["A"]
    assert report.remaining == 2
    assert report.reconciled is False


async def test_replay_tags_payload_with_local_id(make_coordinator, client, queue_repo):
    entry = queue_repo.enqueue(_payment("A"))
    coordinator = make_coordinator(online=True)

    await coordinator.drain()

    assert client.sent[0].payload["clientMutationId"] == entry.local_id
    # The persisted payload is not rewritten
    assert "clientMutationId" not in entry.mutation.payload


async def test_online_submit_queues_behind_pending_work(make_coordinator, client, queue_repo):
    """Test a customer with queued mutations never has a newer one sent first"""
    queue_repo.enqueue(_payment("old"))
    coordinator = make_coordinator(online=True)

    result = await coordinator.submit(_payment("new"))
    assert result.status == MutationStatus.QUEUED

    await coordinator.drain()
    await coordinator.close()

    assert client.refs() == ["old", "new"]
    assert queue_repo.count() == 0


async def test_other_customers_are_not_held_back(make_coordinator, client, queue_repo):
    queue_repo.enqueue(_payment("old", customer_id="cust_1"))
    coordinator = make_coordinator(online=True)

    result = await coordinator.submit(_payment("other", customer_id="cust_2"))

    assert result.status == MutationStatus.COMMITTED
    await coordinator.close()


async def test_same_customer_mutations_never_interleave(make_coordinator, client):
    coordinator = make_coordinator(online=True)

    results = await asyncio.gather(
        coordinator.submit(_payment("A")),
        coordinator.submit(_payment("B")),
    )

    assert all(r.status == MutationStatus.COMMITTED for r in results)
    assert client.max_in_flight == 1
    assert client.refs() == ["A", "B"]


async def test_start_replays_persisted_queue(make_coordinator, client, queue_repo):
    queue_repo.enqueue(_payment("A"))
    coordinator = make_coordinator(online=True)

    report = await coordinator.start()

    assert [e.mutation.payload["ref"] for e in report.committed] == ["A"]
    assert client.refs() == ["A"]


async def test_start_offline_leaves_queue_alone(make_coordinator, client, queue_repo):
    queue_repo.enqueue(_payment("A"))
    coordinator = make_coordinator(online=False)

    assert await coordinator.start() is None
    assert queue_repo.count() == 1


async def test_reconnect_refetches_active_views(make_coordinator, cache):
    coordinator = make_coordinator(online=False)
    calls = []

    async def fetch():
        calls.append(1)
        return len(calls)

    handle = cache.observe(keys.debt_summary(), fetch)
    await handle.read()

    await coordinator.connectivity.set_online(True)

    assert len(calls) == 2
    handle.close()


async def test_halted_reconnect_replay_is_reported(make_coordinator, client, queue_repo, halts):
    coordinator = make_coordinator(online=False)
    client.fail("A", AuthorizationError("Session expired", 401))
    await coordinator.submit(_payment("A"))

    await coordinator.connectivity.set_online(True)

    assert len(halts) == 1
    assert isinstance(halts[0].halted_by, AuthorizationError)
    assert coordinator.last_replay is halts[0]
    assert queue_repo.count() == 1

    report = await coordinator.drain()

    assert not report.halted
    assert coordinator.last_replay is report
    assert queue_repo.count() == 0
    assert len(halts) == 1
