"""Domain models - pure Python dataclasses representing ledger entities"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class TransactionKind(str, Enum):
    CHARGE = "CHARGE"
    PAYMENT = "PAYMENT"
    ADJUSTMENT = "ADJUSTMENT"


class AgingBucket(str, Enum):
    """Aging of an outstanding charge, ordered youngest to oldest"""

    CURRENT = "CURRENT"
    DAYS_31_60 = "DAYS_31_60"
    DAYS_61_90 = "DAYS_61_90"
    OVER_90 = "OVER_90"


class CollectionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    OVERDUE = "OVERDUE"
    SUSPENDED = "SUSPENDED"


class PaymentStatus(str, Enum):
    UNPAID = "UNPAID"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    COLLECTION = "COLLECTION"


class MutationType(str, Enum):
    CHARGE = "charge"
    PAYMENT = "payment"
    ADJUSTMENT = "adjustment"
    MARK_PAID = "mark-paid"
    REMINDER_NOTE = "reminder-note"


@dataclass(frozen=True)
class Transaction:
    """Committed ledger transaction; corrections are new ADJUSTMENT rows"""

    id: str
    customer_id: str
    kind: TransactionKind
    amount_cents: int
    occurred_at: datetime
    created_at: datetime
    quantity: Optional[int] = None
    unit_price_cents: Optional[int] = None
    notes: Optional[str] = None

    @property
    def signed_amount_cents(self) -> int:
        """Charges increase the balance, payments decrease it, adjustments keep their sign"""
        if self.kind == TransactionKind.CHARGE:
            return abs(self.amount_cents)
        if self.kind == TransactionKind.PAYMENT:
            return -abs(self.amount_cents)
        return self.amount_cents

    @property
    def sort_key(self) -> tuple[datetime, datetime]:
        return (self.occurred_at, self.created_at)


@dataclass
class LedgerSnapshot:
    """Output of the ledger aggregation as of a report date"""

    as_of: date
    balance_cents: int
    bucket_totals: Dict[AgingBucket, int]
    bucket_counts: Dict[AgingBucket, int]
    oldest_open_charge_date: Optional[date] = None
    last_payment_date: Optional[date] = None

    @property
    def overdue_cents(self) -> int:
        return sum(
            amount for bucket, amount in self.bucket_totals.items()
            if bucket != AgingBucket.CURRENT
        )


@dataclass
class DebtAccount:
    """Ledger account for one customer. The balance is always derived."""

    customer_id: str
    transactions: List[Transaction] = field(default_factory=list)
    collection_status: CollectionStatus = CollectionStatus.ACTIVE

    def __post_init__(self) -> None:
        self.transactions = sorted(self.transactions, key=lambda t: t.sort_key)

    @property
    def balance_cents(self) -> int:
        return sum(t.signed_amount_cents for t in self.transactions)

    @property
    def last_payment_date(self) -> Optional[date]:
        payments = [t.occurred_at.date() for t in self.transactions if t.kind == TransactionKind.PAYMENT]
        return max(payments) if payments else None


@dataclass
class PriceOverride:
    """Per-customer custom unit price, optionally bounded in time"""

    customer_id: str
    custom_unit_price_cents: Optional[int]
    active_from: Optional[date] = None
    active_until: Optional[date] = None


@dataclass
class Sale:
    """Recorded sale as stored at sale time"""

    sale_id: str
    quantity: int
    unit_price_cents: Optional[int]
    total_cents: int

    @classmethod
    def from_transaction(cls, txn: Transaction) -> "Sale":
        return cls(
            sale_id=txn.id,
            quantity=txn.quantity or 0,
            unit_price_cents=txn.unit_price_cents,
            total_cents=abs(txn.amount_cents),
        )


@dataclass
class PricedSale:
    """Sale re-valued with the effective price; never written back"""

    sale: Sale
    effective_unit_price_cents: int
    effective_total_cents: int
    override_applied: bool
    has_discrepancy: bool

    @property
    def discrepancy_cents(self) -> int:
        return self.effective_total_cents - self.sale.total_cents


@dataclass
class CustomerProfile:
    customer_id: str
    name: str
    collection_status: CollectionStatus
    price_override: Optional[PriceOverride] = None
    credit_limit_cents: Optional[int] = None


@dataclass
class CustomerDetail:
    """Customer profile with its committed transactions"""

    profile: CustomerProfile
    transactions: List[Transaction]


@dataclass
class OutstandingBalance:
    customer_id: str
    total_owed_cents: int
    collection_status: CollectionStatus
    customer_name: str = ""
    days_past_due: int = 0
    oldest_debt_date: Optional[date] = None
    last_payment_date: Optional[date] = None
    credit_limit_cents: Optional[int] = None

    @property
    def has_debt(self) -> bool:
        return self.total_owed_cents > 0


@dataclass
class DebtSummary:
    total_outstanding_cents: int
    active_debtors: int
    weekly_payments_cents: int


@dataclass
class CustomerDebtSummary:
    customer_id: str
    customer_name: str
    balance_cents: int
    collection_status: CollectionStatus
    last_payment_date: Optional[date] = None


@dataclass
class Page:
    items: List[Any]
    page: int
    limit: int
    total: int


@dataclass
class Payment:
    id: str
    customer_id: str
    amount_cents: int
    paid_cents: int
    status: PaymentStatus
    created_at: datetime
    due_date: Optional[date] = None


@dataclass
class ReminderNote:
    id: str
    customer_id: str
    note: str
    reminder_date: datetime


@dataclass
class AgingReportRow:
    customer_id: str
    customer_name: str
    buckets: Dict[AgingBucket, int]
    total_owed_cents: int
    collection_status: CollectionStatus


@dataclass
class AgingReport:
    as_of: date
    rows: List[AgingReportRow]
    totals: Dict[AgingBucket, int]

    @property
    def total_outstanding_cents(self) -> int:
        return sum(self.totals.values())


@dataclass
class DailyPaymentsReport:
    day: date
    total_amount_cents: int
    payment_count: int
    payments: List[Transaction] = field(default_factory=list)


@dataclass
class Mutation:
    """Balance-affecting (or reminder) request submitted by a caller"""

    mutation_type: MutationType
    customer_id: str
    payload: Dict[str, Any]


@dataclass
class SyncQueueEntry:
    """Mutation awaiting commit; exists only while offline or in flight"""

    local_id: str
    sequence: int
    mutation: Mutation
    enqueued_at: datetime
    attempt: int = 0
