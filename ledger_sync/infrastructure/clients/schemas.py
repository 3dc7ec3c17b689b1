"""Pydantic schemas for ledger API payloads; amounts are currency units on the wire and cents everywhere else"""

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated, List, Optional

from pydantic import (
    AfterValidator,
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    PositiveInt,
)

from ledger_sync.domain.models import (
    AgingBucket,
    AgingReport,
    AgingReportRow,
    CollectionStatus,
    CustomerDebtSummary,
    CustomerDetail,
    CustomerProfile,
    DailyPaymentsReport,
    DebtSummary,
    OutstandingBalance,
    Payment,
    PaymentStatus,
    PriceOverride,
    ReminderNote,
    Transaction,
    TransactionKind,
)
from ledger_sync.utils.date_utils import ensure_aware


def to_cents(value) -> int:
    """12.5 → 1250; rounds half up to the cent"""
    if isinstance(value, bool):
        raise ValueError("amount must be numeric")
    return int((Decimal(str(value)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _optional_cents(value):
    return None if value is None else to_cents(value)


def _full_datetime(value):
    # Date-only strings are midnight UTC
    if isinstance(value, str) and len(value) == 10:
        return f"{value}T00:00:00+00:00"
    return value


def _date_part(value):
    if isinstance(value, str) and len(value) > 10:
        return value[:10]
    if isinstance(value, datetime):
        return value.date()
    return value


def _upper(value):
    return value.upper() if isinstance(value, str) else value


Cents = Annotated[int, BeforeValidator(to_cents)]
OptionalCents = Annotated[Optional[int], BeforeValidator(_optional_cents)]
Timestamp = Annotated[datetime, BeforeValidator(_full_datetime), AfterValidator(ensure_aware)]
DateOnly = Annotated[Optional[date], BeforeValidator(_date_part)]


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TransactionSchema(WireModel):
    id: str
    customer_id: str = Field(alias="customerId")
    kind: Annotated[TransactionKind, BeforeValidator(_upper)] = Field(
        validation_alias=AliasChoices("kind", "type")
    )
    amount: Cents
    occurred_at: Timestamp = Field(validation_alias=AliasChoices("occurredAt", "transactionDate"))
    created_at: Timestamp = Field(alias="createdAt")
    quantity: Optional[int] = None
    unit_price: OptionalCents = Field(default=None, alias="unitPrice")
    notes: Optional[str] = None

    def to_domain(self) -> Transaction:
        return Transaction(
            id=self.id,
            customer_id=self.customer_id,
            kind=self.kind,
            amount_cents=self.amount,
            occurred_at=self.occurred_at,
            created_at=self.created_at,
            quantity=self.quantity,
            unit_price_cents=self.unit_price,
            notes=self.notes,
        )


class CustomerSchema(WireModel):
    id: str
    name: str = ""
    collection_status: Annotated[CollectionStatus, BeforeValidator(_upper)] = Field(
        default=CollectionStatus.ACTIVE, alias="collectionStatus"
    )
    custom_unit_price: OptionalCents = Field(default=None, alias="customUnitPrice")
    custom_price_active_from: DateOnly = Field(default=None, alias="customPriceActiveFrom")
    custom_price_active_until: DateOnly = Field(default=None, alias="customPriceActiveUntil")
    credit_limit: OptionalCents = Field(default=None, alias="creditLimit")

    def to_domain(self) -> CustomerProfile:
        override = None
        if self.custom_unit_price is not None:
            override = PriceOverride(
                customer_id=self.id,
                custom_unit_price_cents=self.custom_unit_price,
                active_from=self.custom_price_active_from,
                active_until=self.custom_price_active_until,
            )
        return CustomerProfile(
            customer_id=self.id,
            name=self.name,
            collection_status=self.collection_status,
            price_override=override,
            credit_limit_cents=self.credit_limit,
        )


class CustomerDetailSchema(WireModel):
    customer: CustomerSchema
    transactions: List[TransactionSchema] = []

    def to_domain(self) -> CustomerDetail:
        return CustomerDetail(
            profile=self.customer.to_domain(),
            transactions=[t.to_domain() for t in self.transactions],
        )


class HistorySchema(WireModel):
    transactions: List[TransactionSchema] = []


class OutstandingBalanceSchema(WireModel):
    customer_id: str = Field(alias="customerId")
    total_owed: Cents = Field(validation_alias=AliasChoices("totalOwed", "outstandingBalance"))
    collection_status: Annotated[CollectionStatus, BeforeValidator(_upper)] = Field(
        default=CollectionStatus.ACTIVE, alias="collectionStatus"
    )
    customer_name: str = Field(default="", alias="customerName")
    days_past_due: int = Field(default=0, alias="daysPastDue")
    oldest_debt_date: DateOnly = Field(default=None, alias="oldestDebtDate")
    last_payment_date: DateOnly = Field(default=None, alias="lastPaymentDate")
    credit_limit: OptionalCents = Field(default=None, alias="creditLimit")

    def to_domain(self) -> OutstandingBalance:
        return OutstandingBalance(
            customer_id=self.customer_id,
            total_owed_cents=self.total_owed,
            collection_status=self.collection_status,
            customer_name=self.customer_name,
            days_past_due=self.days_past_due,
            oldest_debt_date=self.oldest_debt_date,
            last_payment_date=self.last_payment_date,
            credit_limit_cents=self.credit_limit,
        )


class DebtSummarySchema(WireModel):
    total_outstanding: Cents = Field(alias="totalOutstanding")
    active_debtors: int = Field(validation_alias=AliasChoices("activeDebtors", "activeDebtorCount"))
    weekly_payments: Cents = Field(validation_alias=AliasChoices("weeklyPayments", "weeklyPaymentTotal"))

    def to_domain(self) -> DebtSummary:
        return DebtSummary(
            total_outstanding_cents=self.total_outstanding,
            active_debtors=self.active_debtors,
            weekly_payments_cents=self.weekly_payments,
        )


class CustomerDebtSummarySchema(WireModel):
    customer_id: str = Field(alias="customerId")
    customer_name: str = Field(default="", alias="customerName")
    balance: Cents = Field(validation_alias=AliasChoices("balance", "totalOwed"))
    collection_status: Annotated[CollectionStatus, BeforeValidator(_upper)] = Field(
        default=CollectionStatus.ACTIVE, alias="collectionStatus"
    )
    last_payment_date: DateOnly = Field(default=None, alias="lastPaymentDate")

    def to_domain(self) -> CustomerDebtSummary:
        return CustomerDebtSummary(
            customer_id=self.customer_id,
            customer_name=self.customer_name,
            balance_cents=self.balance,
            collection_status=self.collection_status,
            last_payment_date=self.last_payment_date,
        )


class PaginationSchema(WireModel):
    page: int = 1
    limit: int = 20
    total: int = 0


class CustomerPageSchema(WireModel):
    data: List[CustomerDebtSummarySchema]
    pagination: PaginationSchema = PaginationSchema()


class PaymentSchema(WireModel):
    id: str
    customer_id: str = Field(alias="customerId")
    amount: Cents
    paid_amount: Cents = Field(default=0, alias="paidAmount")
    status: Annotated[PaymentStatus, BeforeValidator(_upper)] = PaymentStatus.UNPAID
    created_at: Timestamp = Field(alias="createdAt")
    due_date: DateOnly = Field(default=None, alias="dueDate")

    def to_domain(self) -> Payment:
        return Payment(
            id=self.id,
            customer_id=self.customer_id,
            amount_cents=self.amount,
            paid_cents=self.paid_amount,
            status=self.status,
            created_at=self.created_at,
            due_date=self.due_date,
        )


class ReminderNoteSchema(WireModel):
    id: str
    customer_id: str = Field(alias="customerId")
    note: str
    reminder_date: Timestamp = Field(validation_alias=AliasChoices("reminderDate", "createdAt"))

    def to_domain(self) -> ReminderNote:
        return ReminderNote(
            id=self.id,
            customer_id=self.customer_id,
            note=self.note,
            reminder_date=self.reminder_date,
        )


class AgingReportRowSchema(WireModel):
    customer_id: str = Field(alias="customerId")
    customer_name: str = Field(default="", alias="customerName")
    current: Cents = 0
    days_31_60: Cents = Field(default=0, alias="days31to60")
    days_61_90: Cents = Field(default=0, alias="days61to90")
    over_90: Cents = Field(default=0, alias="over90Days")
    total_owed: Cents = Field(alias="totalOwed")
    collection_status: Annotated[CollectionStatus, BeforeValidator(_upper)] = Field(
        default=CollectionStatus.ACTIVE, alias="collectionStatus"
    )

    def to_domain(self) -> AgingReportRow:
        return AgingReportRow(
            customer_id=self.customer_id,
            customer_name=self.customer_name,
            buckets={
                AgingBucket.CURRENT: self.current,
                AgingBucket.DAYS_31_60: self.days_31_60,
                AgingBucket.DAYS_61_90: self.days_61_90,
                AgingBucket.OVER_90: self.over_90,
            },
            total_owed_cents=self.total_owed,
            collection_status=self.collection_status,
        )


class AgingReportSchema(WireModel):
    customers: List[AgingReportRowSchema] = []

    def to_domain(self, as_of: date) -> AgingReport:
        rows = [row.to_domain() for row in self.customers]
        totals = {bucket: sum(row.buckets[bucket] for row in rows) for bucket in AgingBucket}
        return AgingReport(as_of=as_of, rows=rows, totals=totals)


class DailyPaymentsSchema(WireModel):
    day: DateOnly = Field(default=None, validation_alias=AliasChoices("date", "day"))
    total_amount: Cents = Field(default=0, alias="totalAmount")
    payment_count: int = Field(default=0, alias="paymentCount")
    payments: List[TransactionSchema] = []

    def to_domain(self, day: date) -> DailyPaymentsReport:
        return DailyPaymentsReport(
            day=self.day or day,
            total_amount_cents=self.total_amount,
            payment_count=self.payment_count,
            payments=[p.to_domain() for p in self.payments],
        )


class MutationResponseSchema(WireModel):
    transaction: Optional[TransactionSchema] = None


# Requests: cents leave as currency units

def to_amount(cents: int) -> float:
    """1250 → 12.5"""
    return float(Decimal(cents) / 100)


Amount = Annotated[int, PlainSerializer(to_amount, return_type=float)]


class MutationRequest(WireModel):
    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ChargeRequest(MutationRequest):
    amount: Amount = Field(gt=0)
    transaction_date: date = Field(alias="transactionDate")
    quantity: Optional[PositiveInt] = None
    unit_price: Optional[Amount] = Field(default=None, alias="unitPrice")
    notes: Optional[str] = None


class PaymentRequest(MutationRequest):
    amount: Amount = Field(gt=0)
    transaction_date: date = Field(alias="transactionDate")
    notes: Optional[str] = None


class AdjustmentRequest(MutationRequest):
    """Signed amount: negative adjustments reduce the balance"""

    amount: Amount
    reason: str = Field(min_length=1)
    transaction_date: date = Field(alias="transactionDate")
    notes: Optional[str] = None


class MarkPaidRequest(MutationRequest):
    final_payment: Optional[Amount] = Field(default=None, alias="finalPayment")
    transaction_date: date = Field(alias="transactionDate")


class ReminderNoteRequest(MutationRequest):
    note: str = Field(min_length=1)
    reminder_date: date = Field(alias="reminderDate")
