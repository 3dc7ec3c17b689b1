"""
Ledger session - the client-side entry point.

Owns one cache, one sync coordinator and the HTTP transport for its lifetime:

    async with LedgerSession() as session:
        summary = await session.read(views.debt_summary(session.client))
        await session.record_payment("cust_1", 2500, date.today())
"""

import asyncio
import logging
from datetime import date, datetime, timedelta
from typing import Any, List, Optional

import httpx

from ledger_sync.config import Settings, settings as default_settings
from ledger_sync.domain.ledger import build_account, refresh_account
from ledger_sync.domain.models import DebtAccount, LedgerSnapshot, Mutation, MutationType, PricedSale, Transaction
from ledger_sync.domain.pricing import price_charges
from ledger_sync.infrastructure.cache.store import CacheStore, Fetcher, ViewHandle
from ledger_sync.infrastructure.clients.debts import DebtsClient
from ledger_sync.infrastructure.clients.retry import RetryPolicy, execute_with_retry
from ledger_sync.infrastructure.clients.schemas import (
    AdjustmentRequest,
    ChargeRequest,
    MarkPaidRequest,
    PaymentRequest,
    ReminderNoteRequest,
)
from ledger_sync.infrastructure.clients.transport import ApiTransport
from ledger_sync.infrastructure.database.session import create_session_factory
from ledger_sync.infrastructure.observability.logging import setup_logging
from ledger_sync.infrastructure.sync.connectivity import ConnectivityMonitor
from ledger_sync.infrastructure.sync.coordinator import MutationResult, OfflineSyncCoordinator, ReplayReport
from ledger_sync.infrastructure.sync.queue import SyncQueueRepository
from ledger_sync.utils.date_utils import as_date, utc_now
from ledger_sync.views import ViewSpec, customer_detail, customer_history

logger = logging.getLogger(__name__)


class LedgerSession:
    """
    Async context manager wiring transport, cache, queue and coordinator.

    Entering the session replays anything left in the durable queue by a
    previous run (when online). Leaving it closes the transport and drops
    the cache; the queue survives on disk.
    """

    def __init__(
        self,
        config: Settings | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
        online: Optional[bool] = None,
        retry_policy: RetryPolicy | None = None,
        sleep=None,
        on_replay_failure=None,
        on_replay_halted=None,
        configure_logging: bool = False,
    ):
        self.config = config or default_settings
        self._http_transport = http_transport
        self._online = online
        self.retry_policy = retry_policy or RetryPolicy(
            max_retries=self.config.retry_max_attempts,
            backoff_base_ms=self.config.retry_backoff_base_ms,
            backoff_cap_ms=self.config.retry_backoff_cap_ms,
        )
        self.sleep = sleep or asyncio.sleep
        self._on_replay_failure = on_replay_failure
        self._on_replay_halted = on_replay_halted
        self._configure_logging = configure_logging

        self.transport: Optional[ApiTransport] = None
        self.client: Optional[DebtsClient] = None
        self.cache: Optional[CacheStore] = None
        self.queue: Optional[SyncQueueRepository] = None
        self.connectivity: Optional[ConnectivityMonitor] = None
        self.coordinator: Optional[OfflineSyncCoordinator] = None
        self.startup_replay: Optional[ReplayReport] = None

    async def __aenter__(self) -> "LedgerSession":
        if self._configure_logging:
            setup_logging(self.config.log_level, self.config.service_name)

        self.transport = ApiTransport(
            base_url=self.config.api_base_url,
            timeout=self.config.http_timeout_seconds,
            transport=self._http_transport,
        )
        self.client = DebtsClient(self.transport)
        self.cache = CacheStore(
            stale_after=timedelta(seconds=self.config.cache_stale_after_seconds),
            gc_after=timedelta(seconds=self.config.cache_gc_seconds),
        )
        self.queue = SyncQueueRepository(create_session_factory(self.config.queue_database_url))
        self.connectivity = ConnectivityMonitor(host_reports_online=self._online)

        self.coordinator = OfflineSyncCoordinator(
            client=self.client,
            queue=self.queue,
            cache=self.cache,
            connectivity=self.connectivity,
            retry_policy=self.retry_policy,
            sleep=self.sleep,
            on_replay_failure=self._on_replay_failure,
            on_replay_halted=self._on_replay_halted,
        )

        logger.info(
            "Ledger session opened",
            extra={"api_base_url": self.config.api_base_url, "online": self.connectivity.is_online},
        )
        self.startup_replay = await self.coordinator.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.coordinator.close()
        await self.cache.clear()
        await self.transport.aclose()
        logger.info("Ledger session closed", extra={"pending_mutations": self.queue.count()})

    # Connectivity

    async def set_online(self, online: bool) -> None:
        """Host connectivity event; going online replays the queue"""
        await self.connectivity.set_online(online)

    async def probe_connectivity(self) -> bool:
        await self.connectivity.probe(self.transport)
        return self.connectivity.is_online

    @property
    def last_replay(self) -> Optional[ReplayReport]:
        """Outcome of the most recent queue drain; check halted_by after reconnecting"""
        return self.coordinator.last_replay

    async def sync_now(self) -> ReplayReport:
        """Manual retry of a halted replay"""
        return await self.coordinator.drain()

    # Reads

    def _retrying(self, fetcher: Fetcher) -> Fetcher:
        async def fetch() -> Any:
            return await execute_with_retry(fetcher, self.retry_policy, self.sleep)

        return fetch

    async def read(self, spec: ViewSpec) -> Any:
        return await self.cache.read(spec.key, self._retrying(spec.fetcher), spec.stale_after)

    def watch(self, spec: ViewSpec) -> ViewHandle:
        """Mount an active view; it is refetched whenever a mutation stales it"""
        return self.cache.observe(spec.key, self._retrying(spec.fetcher), spec.stale_after)

    async def retry_view(self, spec: ViewSpec) -> Any:
        """Manual retry after a failed read: discard whatever is cached and fetch again"""
        self.cache.remove(spec.key)
        return await self.read(spec)

    async def load_account(self, customer_id: str, as_of: date | datetime | None = None) -> tuple[DebtAccount, LedgerSnapshot]:
        """Rebuild a customer's ledger account from history and aggregate it"""
        detail = await self.read(customer_detail(self.client, customer_id))
        transactions = await self.read(customer_history(self.client, customer_id))
        status = detail.profile.collection_status if detail else None

        account = build_account(customer_id, transactions, collection_status=status)
        snapshot = refresh_account(account, as_of or _default_report_date(transactions))
        return account, snapshot

    async def price_history(self, customer_id: str, now: date | datetime | None = None) -> List[PricedSale]:
        """Historical charges valued with the customer's current effective price"""
        detail = await self.read(customer_detail(self.client, customer_id))
        if detail is None:
            return []
        transactions = await self.read(customer_history(self.client, customer_id))
        return price_charges(
            transactions,
            detail.profile.price_override,
            now or utc_now(),
            base_unit_price_cents=self.config.default_unit_price_cents,
            custom_pricing_enabled=self.config.enable_custom_pricing,
            epsilon_cents=self.config.pricing_epsilon_cents,
        )

    # Mutations

    async def submit(self, mutation: Mutation) -> MutationResult:
        return await self.coordinator.submit(mutation)

    async def record_charge(
        self,
        customer_id: str,
        amount_cents: int,
        transaction_date: date,
        quantity: Optional[int] = None,
        unit_price_cents: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> MutationResult:
        request = ChargeRequest(
            amount=amount_cents,
            transaction_date=transaction_date,
            quantity=quantity,
            unit_price=unit_price_cents,
            notes=notes,
        )
        return await self.submit(Mutation(MutationType.CHARGE, customer_id, request.to_payload()))

    async def record_payment(
        self,
        customer_id: str,
        amount_cents: int,
        transaction_date: date,
        notes: Optional[str] = None,
    ) -> MutationResult:
        request = PaymentRequest(amount=amount_cents, transaction_date=transaction_date, notes=notes)
        return await self.submit(Mutation(MutationType.PAYMENT, customer_id, request.to_payload()))

    async def record_adjustment(
        self,
        customer_id: str,
        amount_cents: int,
        reason: str,
        transaction_date: date,
        notes: Optional[str] = None,
    ) -> MutationResult:
        request = AdjustmentRequest(
            amount=amount_cents,
            reason=reason,
            transaction_date=transaction_date,
            notes=notes,
        )
        return await self.submit(Mutation(MutationType.ADJUSTMENT, customer_id, request.to_payload()))

    async def mark_paid(
        self,
        customer_id: str,
        transaction_date: date,
        final_payment_cents: Optional[int] = None,
    ) -> MutationResult:
        request = MarkPaidRequest(final_payment=final_payment_cents, transaction_date=transaction_date)
        return await self.submit(Mutation(MutationType.MARK_PAID, customer_id, request.to_payload()))

    async def add_reminder_note(self, customer_id: str, note: str, reminder_date: date) -> MutationResult:
        request = ReminderNoteRequest(note=note, reminder_date=reminder_date)
        return await self.submit(Mutation(MutationType.REMINDER_NOTE, customer_id, request.to_payload()))


def _default_report_date(transactions: List[Transaction]) -> date:
    """Today in UTC, or later when the ledger already holds entries dated ahead of it"""
    return max([utc_now().date(), *(as_date(t.occurred_at) for t in transactions)])
