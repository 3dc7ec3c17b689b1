"""Offline sync coordinator - sends or queues mutations and replays the queue on reconnect"""

import asyncio
import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional

from ledger_sync.domain.exceptions import (
    ApiFailure,
    AuthorizationError,
    InvalidResponseError,
    TransientServiceError,
)
from ledger_sync.domain.models import Mutation, SyncQueueEntry, Transaction
from ledger_sync.infrastructure.cache.invalidation import keys_to_invalidate
from ledger_sync.infrastructure.cache.store import CacheStore
from ledger_sync.infrastructure.clients.debts import DebtsClient
from ledger_sync.infrastructure.clients.retry import RetryPolicy, execute_with_retry
from ledger_sync.infrastructure.observability.logging import log_mutation, log_replay
from ledger_sync.infrastructure.observability.metrics import record_mutation, replay_counter
from ledger_sync.infrastructure.sync.connectivity import ConnectivityMonitor, ConnectivityState
from ledger_sync.infrastructure.sync.queue import SyncQueueRepository

logger = logging.getLogger(__name__)

# Failures that stop a replay and keep the rest of the queue for the next reconnect
HALTING_FAILURES = (TransientServiceError, AuthorizationError)


class MutationStatus(str, Enum):
    COMMITTED = "committed"
    QUEUED = "queued"


@dataclass
class MutationResult:
    status: MutationStatus
    mutation: Mutation
    local_id: Optional[str] = None
    transaction: Optional[Transaction] = None


@dataclass
class SyncConflict:
    """Queued mutation the server rejected on replay; dropped from the queue"""

    entry: SyncQueueEntry
    error: ApiFailure


@dataclass
class ReplayReport:
    committed: List[SyncQueueEntry] = field(default_factory=list)
    dropped: List[SyncConflict] = field(default_factory=list)
    remaining: int = 0
    halted_by: Optional[ApiFailure] = None
    reconciled: bool = False

    @property
    def halted(self) -> bool:
        return self.halted_by is not None


class OfflineSyncCoordinator:
    """
    Single entry point for mutations.

    - ONLINE: send now (retried per policy), then invalidate dependent cache views
    - OFFLINE: persist to the queue in submission order and answer QUEUED
    - OFFLINE → ONLINE: replay the queue FIFO, one entry at a time, then
      invalidate and refetch every active view (reconciliation)

    Mutations for one customer never interleave: a customer with queued work
    gets new mutations appended behind it, and in-flight sends hold a
    per-customer lock.

    Replay failure policy:
    - Rejections (validation, absence, other 4xx): drop the entry, report a
      SyncConflict, continue with the next entry
    - Transient failures after retries and authorization failures: halt, keep
      the entry and everything behind it queued, and hand the report to
      on_replay_halted
    """

    def __init__(
        self,
        client: DebtsClient,
        queue: SyncQueueRepository,
        cache: CacheStore,
        connectivity: ConnectivityMonitor,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_replay_failure: Callable[[SyncConflict], None] | None = None,
        on_replay_halted: Callable[[ReplayReport], None] | None = None,
    ):
        self.client = client
        self.queue = queue
        self.cache = cache
        self.connectivity = connectivity
        self.retry_policy = retry_policy or RetryPolicy()
        self.sleep = sleep
        self.on_replay_failure = on_replay_failure
        self.on_replay_halted = on_replay_halted
        self.last_replay: Optional[ReplayReport] = None
        self._customer_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._drain_lock = asyncio.Lock()
        self._drain_task: Optional[asyncio.Task] = None
        self._unsubscribe = connectivity.subscribe(self._on_connectivity_change)

    async def start(self) -> Optional[ReplayReport]:
        """Replay entries persisted by a previous run, if we start online"""
        if self.connectivity.is_online and self.queue.count():
            return await self.drain()
        return None

    async def close(self) -> None:
        self._unsubscribe()
        if self._drain_task is not None and not self._drain_task.done():
            self._drain_task.cancel()
            await asyncio.gather(self._drain_task, return_exceptions=True)

    # Submission

    async def submit(self, mutation: Mutation) -> MutationResult:
        """
        Send or queue a mutation.

        Raises:
            ApiFailure: Online send failed terminally or exhausted its retries
        """
        if not self.connectivity.is_online or self.queue.has_pending_for(mutation.customer_id):
            return self._enqueue(mutation)

        start_time = time.time()
        async with self._customer_locks[mutation.customer_id]:
            # Connectivity may have dropped, or a replay may have queued work, while we waited
            if not self.connectivity.is_online or self.queue.has_pending_for(mutation.customer_id):
                return self._enqueue(mutation)

            try:
                transaction = await execute_with_retry(
                    lambda: self.client.send_mutation(mutation),
                    self.retry_policy,
                    self.sleep,
                )
            except ApiFailure:
                record_mutation(mutation.mutation_type.value, "failed")
                log_mutation(mutation.mutation_type.value, mutation.customer_id, "failed")
                raise

        self._invalidate(mutation)
        record_mutation(mutation.mutation_type.value, "committed")
        log_mutation(
            mutation.mutation_type.value,
            mutation.customer_id,
            "committed",
            duration_ms=(time.time() - start_time) * 1000,
        )
        return MutationResult(status=MutationStatus.COMMITTED, mutation=mutation, transaction=transaction)

    def _enqueue(self, mutation: Mutation) -> MutationResult:
        entry = self.queue.enqueue(mutation)
        record_mutation(mutation.mutation_type.value, "queued")
        log_mutation(mutation.mutation_type.value, mutation.customer_id, "queued", local_id=entry.local_id)

        if self.connectivity.is_online:
            self._schedule_drain()
        return MutationResult(status=MutationStatus.QUEUED, mutation=mutation, local_id=entry.local_id)

    def _schedule_drain(self) -> None:
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = asyncio.ensure_future(self.drain())

    def _invalidate(self, mutation: Mutation) -> None:
        for prefix in keys_to_invalidate(mutation.mutation_type, mutation.customer_id):
            self.cache.invalidate(prefix)

    # Replay

    async def _on_connectivity_change(self, state: ConnectivityState) -> None:
        if state == ConnectivityState.ONLINE:
            await self.drain()

    async def drain(self) -> ReplayReport:
        """Replay queued mutations strictly in submission order"""
        async with self._drain_lock:
            report = ReplayReport()

            while self.connectivity.is_online:
                entry = self.queue.peek()
                if entry is None:
                    break
                await self._replay(entry, report)
                if report.halted:
                    break

            report.remaining = self.queue.count()
            if report.remaining == 0 and self.connectivity.is_online:
                # Server state may have moved on while we were away
                await self.cache.refetch_active()
                report.reconciled = True

            log_replay(len(report.committed), len(report.dropped), report.remaining, report.halted)
            self.last_replay = report
            if report.halted and self.on_replay_halted is not None:
                self.on_replay_halted(report)
            return report

    async def _replay(self, entry: SyncQueueEntry, report: ReplayReport) -> None:
        mutation = entry.mutation
        # The local id lets the server recognise a resend of a mutation it already committed
        outgoing = replace(mutation, payload={**mutation.payload, "clientMutationId": entry.local_id})

        async def attempt() -> Optional[Transaction]:
            self.queue.record_attempt(entry.local_id)
            return await self.client.send_mutation(outgoing)

        async with self._customer_locks[mutation.customer_id]:
            try:
                await execute_with_retry(attempt, self.retry_policy, self.sleep)
            except HALTING_FAILURES as e:
                report.halted_by = e
                replay_counter.labels(outcome="halted").inc()
                logger.warning(
                    "Sync replay halted",
                    extra={"local_id": entry.local_id, "failure_kind": e.kind.value, "status_code": e.status_code},
                )
                return
            except ApiFailure as e:
                self.queue.remove(entry.local_id)
                self._report_conflict(SyncConflict(entry=entry, error=e), report)
                return
            except InvalidResponseError as e:
                # Server accepted the write; only its answer was unreadable
                logger.warning("Unreadable replay response: %s", e, extra={"local_id": entry.local_id})

            self.queue.remove(entry.local_id)

        self._invalidate(mutation)
        report.committed.append(entry)
        replay_counter.labels(outcome="committed").inc()
        record_mutation(mutation.mutation_type.value, "committed")
        log_mutation(mutation.mutation_type.value, mutation.customer_id, "committed", local_id=entry.local_id)

    def _report_conflict(self, conflict: SyncConflict, report: ReplayReport) -> None:
        report.dropped.append(conflict)
        replay_counter.labels(outcome="dropped").inc()
        record_mutation(conflict.entry.mutation.mutation_type.value, "failed")
        logger.warning(
            "Queued mutation rejected on replay; dropped",
            extra={
                "local_id": conflict.entry.local_id,
                "mutation_type": conflict.entry.mutation.mutation_type.value,
                "customer_id": conflict.entry.mutation.customer_id,
                "failure_kind": conflict.error.kind.value,
                "error": conflict.error.message,
            },
        )
        if self.on_replay_failure is not None:
            self.on_replay_failure(conflict)
