"""
In-memory mock of the ledger REST API.

Serves the endpoints the client consumes under /api, wraps responses in the
{"success", "data"} envelope and supports fault injection so tests can play
503s, 4xx rejections and flaky networks against the real client stack:

    app = create_app()
    app.state.ledger.inject_fault("POST", "/debts/customers/c1/payment", 503, times=2)
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel
from starlette.responses import Response

from ledger_sync.domain.ledger import aggregate, build_account, refresh_account
from ledger_sync.domain.models import AgingBucket, CollectionStatus, Transaction, TransactionKind
from ledger_sync.domain.reports import build_aging_report, daily_payments
from ledger_sync.infrastructure.clients.schemas import to_amount, to_cents

API_PREFIX = "/api"


class MockLedgerError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


@dataclass
class MockCustomer:
    id: str
    name: str = ""
    collection_status: CollectionStatus = CollectionStatus.ACTIVE
    custom_unit_price_cents: Optional[int] = None
    custom_price_active_from: Optional[date] = None
    custom_price_active_until: Optional[date] = None
    credit_limit_cents: Optional[int] = None


@dataclass
class Fault:
    method: str
    path: str
    status_code: int
    remaining: int
    message: str


@dataclass
class ReminderRecord:
    id: str
    customer_id: str
    note: str
    reminder_date: date
    created_at: datetime


@dataclass
class LedgerState:
    """Everything the mock server knows; tests seed and inspect it directly"""

    customers: Dict[str, MockCustomer] = field(default_factory=dict)
    transactions: List[Transaction] = field(default_factory=list)
    reminders: List[ReminderRecord] = field(default_factory=list)
    faults: List[Fault] = field(default_factory=list)
    # (method, path) of every request received, faulted or not
    requests: List[tuple] = field(default_factory=list)
    # clientMutationId → response already sent for it
    applied: Dict[str, Any] = field(default_factory=dict)
    sequence: int = 0

    def add_customer(self, customer_id: str, name: str = "", **kwargs) -> MockCustomer:
        customer = MockCustomer(id=customer_id, name=name or customer_id, **kwargs)
        self.customers[customer_id] = customer
        return customer

    def add_transaction(
        self,
        customer_id: str,
        kind: TransactionKind,
        amount_cents: int,
        occurred_on: date,
        quantity: Optional[int] = None,
        unit_price_cents: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> Transaction:
        self.sequence += 1
        txn = Transaction(
            id=f"txn_{self.sequence}",
            customer_id=customer_id,
            kind=kind,
            amount_cents=amount_cents,
            occurred_at=datetime.combine(occurred_on, datetime.min.time(), tzinfo=timezone.utc),
            # Strictly increasing so same-day entries keep submission order
            created_at=datetime.now(timezone.utc) + timedelta(microseconds=self.sequence),
            quantity=quantity,
            unit_price_cents=unit_price_cents,
            notes=notes,
        )
        self.transactions.append(txn)
        return txn

    def history(self, customer_id: str) -> List[Transaction]:
        return sorted(
            (t for t in self.transactions if t.customer_id == customer_id),
            key=lambda t: t.sort_key,
        )

    def require_customer(self, customer_id: str) -> MockCustomer:
        customer = self.customers.get(customer_id)
        if customer is None:
            raise MockLedgerError(404, f"Customer {customer_id} not found")
        return customer

    def inject_fault(
        self,
        method: str,
        path: str,
        status_code: int,
        times: int = 1,
        message: str = "Injected failure",
    ) -> None:
        """Answer the next `times` matching requests with status_code; path is a prefix below /api"""
        self.faults.append(Fault(method.upper(), path, status_code, times, message))

    def take_fault(self, method: str, path: str) -> Optional[Fault]:
        for fault in self.faults:
            if fault.remaining > 0 and fault.method == method and path.startswith(fault.path):
                fault.remaining -= 1
                return fault
        return None

    def mutation_paths(self) -> List[str]:
        return [path for method, path in self.requests if method == "POST"]


# Request bodies (currency units on the wire)

class ChargeBody(BaseModel):
    amount: float
    transactionDate: date
    quantity: Optional[int] = None
    unitPrice: Optional[float] = None
    notes: Optional[str] = None
    clientMutationId: Optional[str] = None


class PaymentBody(BaseModel):
    amount: float
    transactionDate: date
    notes: Optional[str] = None
    clientMutationId: Optional[str] = None


class AdjustmentBody(BaseModel):
    amount: float
    reason: str = ""
    transactionDate: date
    notes: Optional[str] = None
    clientMutationId: Optional[str] = None


class MarkPaidBody(BaseModel):
    finalPayment: Optional[float] = None
    transactionDate: date
    clientMutationId: Optional[str] = None


class ReminderNoteBody(BaseModel):
    customerId: str
    note: str
    reminderDate: date
    clientMutationId: Optional[str] = None


# Serialization

def _ok(data: Any) -> Dict[str, Any]:
    return {"success": True, "data": data}


def _optional_amount(cents: Optional[int]) -> Optional[float]:
    return None if cents is None else to_amount(cents)


def _optional_iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def _transaction_json(txn: Transaction) -> Dict[str, Any]:
    return {
        "id": txn.id,
        "customerId": txn.customer_id,
        "type": txn.kind.value,
        "amount": to_amount(txn.amount_cents),
        "transactionDate": txn.occurred_at.date().isoformat(),
        "createdAt": txn.created_at.isoformat(),
        "quantity": txn.quantity,
        "unitPrice": _optional_amount(txn.unit_price_cents),
        "notes": txn.notes,
    }


def _customer_json(customer: MockCustomer) -> Dict[str, Any]:
    return {
        "id": customer.id,
        "name": customer.name,
        "collectionStatus": customer.collection_status.value,
        "customUnitPrice": _optional_amount(customer.custom_unit_price_cents),
        "customPriceActiveFrom": _optional_iso(customer.custom_price_active_from),
        "customPriceActiveUntil": _optional_iso(customer.custom_price_active_until),
        "creditLimit": _optional_amount(customer.credit_limit_cents),
    }


def _outstanding_json(state: LedgerState, customer: MockCustomer, today: date) -> Dict[str, Any]:
    account = build_account(customer.id, state.history(customer.id), customer.collection_status)
    snapshot = refresh_account(account, today)
    oldest = snapshot.oldest_open_charge_date
    return {
        "customerId": customer.id,
        "customerName": customer.name,
        "totalOwed": to_amount(snapshot.balance_cents),
        "collectionStatus": account.collection_status.value,
        "daysPastDue": (today - oldest).days if oldest else 0,
        "oldestDebtDate": _optional_iso(oldest),
        "lastPaymentDate": _optional_iso(snapshot.last_payment_date),
        "creditLimit": _optional_amount(customer.credit_limit_cents),
    }


def _reminder_json(reminder: ReminderRecord) -> Dict[str, Any]:
    return {
        "id": reminder.id,
        "customerId": reminder.customer_id,
        "note": reminder.note,
        "reminderDate": reminder.reminder_date.isoformat(),
        "createdAt": reminder.created_at.isoformat(),
    }


# Routes

router = APIRouter()


def get_state(request: Request) -> LedgerState:
    return request.app.state.ledger


def _once(state: LedgerState, client_mutation_id: Optional[str], commit: Callable[[], Any]) -> Any:
    """Apply a mutation at most once per clientMutationId"""
    if client_mutation_id and client_mutation_id in state.applied:
        return state.applied[client_mutation_id]
    result = commit()
    if client_mutation_id:
        state.applied[client_mutation_id] = result
    return result


@router.get("/health")
def health():
    return {"status": "ok", "service": "mock-ledger"}


@router.get("/debts/summary")
def debt_summary(state: LedgerState = Depends(get_state)):
    today = date.today()
    balances = [aggregate(state.history(c), today).balance_cents for c in state.customers]
    week_ago = today - timedelta(days=7)
    weekly = sum(
        abs(t.amount_cents) for t in state.transactions
        if t.kind == TransactionKind.PAYMENT and t.occurred_at.date() > week_ago
    )
    return _ok({
        "totalOutstanding": to_amount(sum(b for b in balances if b > 0)),
        "activeDebtors": sum(1 for b in balances if b > 0),
        "weeklyPayments": to_amount(weekly),
    })


@router.get("/debts/customers")
def list_debt_customers(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = None,
    search: Optional[str] = None,
    state: LedgerState = Depends(get_state),
):
    today = date.today()
    rows = []
    for customer in state.customers.values():
        account = build_account(customer.id, state.history(customer.id), customer.collection_status)
        snapshot = refresh_account(account, today)
        if status and account.collection_status.value != status.upper():
            continue
        if search and search.lower() not in customer.name.lower():
            continue
        rows.append({
            "customerId": customer.id,
            "customerName": customer.name,
            "balance": to_amount(snapshot.balance_cents),
            "collectionStatus": account.collection_status.value,
            "lastPaymentDate": _optional_iso(snapshot.last_payment_date),
        })

    start = (page - 1) * limit
    return _ok({
        "data": rows[start:start + limit],
        "pagination": {"page": page, "limit": limit, "total": len(rows)},
    })


@router.get("/debts/customers/{customer_id}")
def customer_detail(customer_id: str, state: LedgerState = Depends(get_state)):
    customer = state.require_customer(customer_id)
    return _ok({
        "customer": _customer_json(customer),
        "transactions": [_transaction_json(t) for t in state.history(customer_id)],
    })


@router.get("/debts/customers/{customer_id}/history")
def customer_history(customer_id: str, state: LedgerState = Depends(get_state)):
    state.require_customer(customer_id)
    return _ok({"transactions": [_transaction_json(t) for t in state.history(customer_id)]})


@router.post("/debts/customers/{customer_id}/charge")
def create_charge(customer_id: str, body: ChargeBody, state: LedgerState = Depends(get_state)):
    customer = state.require_customer(customer_id)
    if customer.collection_status == CollectionStatus.SUSPENDED:
        raise MockLedgerError(400, "Customer account is suspended")
    if body.amount <= 0:
        raise MockLedgerError(400, "Charge amount must be positive")

    def commit():
        txn = state.add_transaction(
            customer_id,
            TransactionKind.CHARGE,
            to_cents(body.amount),
            body.transactionDate,
            quantity=body.quantity,
            unit_price_cents=to_cents(body.unitPrice) if body.unitPrice is not None else None,
            notes=body.notes,
        )
        return _ok({"transaction": _transaction_json(txn)})

    return _once(state, body.clientMutationId, commit)


@router.post("/debts/customers/{customer_id}/payment")
def create_payment(customer_id: str, body: PaymentBody, state: LedgerState = Depends(get_state)):
    state.require_customer(customer_id)
    if body.amount <= 0:
        raise MockLedgerError(400, "Payment amount must be positive")

    def commit():
        txn = state.add_transaction(
            customer_id, TransactionKind.PAYMENT, to_cents(body.amount), body.transactionDate, notes=body.notes
        )
        return _ok({"transaction": _transaction_json(txn)})

    return _once(state, body.clientMutationId, commit)


@router.post("/debts/customers/{customer_id}/adjustment")
def create_adjustment(customer_id: str, body: AdjustmentBody, state: LedgerState = Depends(get_state)):
    state.require_customer(customer_id)
    if body.amount == 0:
        raise MockLedgerError(400, "Adjustment amount must not be zero")
    if not body.reason.strip():
        raise MockLedgerError(400, "Adjustment reason is required")

    def commit():
        txn = state.add_transaction(
            customer_id,
            TransactionKind.ADJUSTMENT,
            to_cents(body.amount),
            body.transactionDate,
            notes=body.notes or body.reason,
        )
        return _ok({"transaction": _transaction_json(txn)})

    return _once(state, body.clientMutationId, commit)


@router.post("/debts/customers/{customer_id}/mark-paid")
def mark_paid(customer_id: str, body: MarkPaidBody, state: LedgerState = Depends(get_state)):
    state.require_customer(customer_id)

    def commit():
        balance = aggregate(state.history(customer_id), body.transactionDate).balance_cents
        final = to_cents(body.finalPayment) if body.finalPayment is not None else balance
        if final <= 0:
            return _ok({"transaction": None, "balance": to_amount(balance)})
        txn = state.add_transaction(
            customer_id, TransactionKind.PAYMENT, final, body.transactionDate, notes="Marked as paid"
        )
        return _ok({"transaction": _transaction_json(txn), "balance": to_amount(balance - final)})

    return _once(state, body.clientMutationId, commit)


@router.get("/customers/{customer_id}/outstanding")
def customer_outstanding(customer_id: str, state: LedgerState = Depends(get_state)):
    customer = state.require_customer(customer_id)
    return _ok(_outstanding_json(state, customer, date.today()))


@router.get("/payments")
def list_payments(customerId: Optional[str] = None, state: LedgerState = Depends(get_state)):
    payments = [
        {
            "id": t.id,
            "customerId": t.customer_id,
            "amount": to_amount(abs(t.amount_cents)),
            "paidAmount": to_amount(abs(t.amount_cents)),
            "status": "PAID",
            "createdAt": t.created_at.isoformat(),
        }
        for t in state.transactions
        if t.kind == TransactionKind.PAYMENT and (customerId is None or t.customer_id == customerId)
    ]
    return _ok({"payments": payments})


@router.get("/payments/outstanding")
def outstanding_balances(state: LedgerState = Depends(get_state)):
    today = date.today()
    rows = [_outstanding_json(state, c, today) for c in state.customers.values()]
    return _ok({"customers": [r for r in rows if r["totalOwed"] > 0]})


@router.get("/reports/aging")
def aging_report(report_date: Optional[date] = Query(None, alias="date"), state: LedgerState = Depends(get_state)):
    as_of = report_date or date.today()
    accounts = [
        build_account(c.id, state.history(c.id), c.collection_status) for c in state.customers.values()
    ]
    names = {c.id: c.name for c in state.customers.values()}
    report = build_aging_report(accounts, as_of, names)
    return _ok({
        "date": as_of.isoformat(),
        "customers": [
            {
                "customerId": row.customer_id,
                "customerName": row.customer_name,
                "current": to_amount(row.buckets[AgingBucket.CURRENT]),
                "days31to60": to_amount(row.buckets[AgingBucket.DAYS_31_60]),
                "days61to90": to_amount(row.buckets[AgingBucket.DAYS_61_90]),
                "over90Days": to_amount(row.buckets[AgingBucket.OVER_90]),
                "totalOwed": to_amount(row.total_owed_cents),
                "collectionStatus": row.collection_status.value,
            }
            for row in report.rows
        ],
    })


@router.get("/reports/daily-payments")
def daily_payments_report(report_date: Optional[date] = Query(None, alias="date"), state: LedgerState = Depends(get_state)):
    day = report_date or date.today()
    report = daily_payments(state.transactions, day)
    return _ok({
        "date": day.isoformat(),
        "totalAmount": to_amount(report.total_amount_cents),
        "paymentCount": report.payment_count,
        "payments": [_transaction_json(t) for t in report.payments],
    })


@router.post("/reminders/notes")
def add_reminder_note(body: ReminderNoteBody, state: LedgerState = Depends(get_state)):
    state.require_customer(body.customerId)
    if not body.note.strip():
        raise MockLedgerError(400, "Reminder note must not be empty")

    def commit():
        reminder = ReminderRecord(
            id=str(uuid.uuid4()),
            customer_id=body.customerId,
            note=body.note,
            reminder_date=body.reminderDate,
            created_at=datetime.now(timezone.utc),
        )
        state.reminders.append(reminder)
        return _ok(_reminder_json(reminder))

    return _once(state, body.clientMutationId, commit)


@router.get("/customers/{customer_id}/reminders")
def reminder_history(customer_id: str, state: LedgerState = Depends(get_state)):
    state.require_customer(customer_id)
    reminders = sorted(
        (r for r in state.reminders if r.customer_id == customer_id),
        key=lambda r: r.reminder_date,
        reverse=True,
    )
    return _ok({"reminders": [_reminder_json(r) for r in reminders]})


@router.get("/reminders/overdue")
def customers_needing_reminders(
    daysSinceLastReminder: int = Query(7, ge=0),
    state: LedgerState = Depends(get_state),
):
    today = date.today()
    cutoff = today - timedelta(days=daysSinceLastReminder)
    rows = []
    for customer in state.customers.values():
        row = _outstanding_json(state, customer, today)
        if row["totalOwed"] <= 0:
            continue
        last = max((r.reminder_date for r in state.reminders if r.customer_id == customer.id), default=None)
        if last is None or last <= cutoff:
            rows.append(row)
    return _ok({"customers": rows})


def create_app(state: Optional[LedgerState] = None) -> FastAPI:
    """Create a mock ledger server with its own in-memory state"""
    app = FastAPI(title="Mock Ledger Server", version="1.0.0")
    app.state.ledger = state or LedgerState()

    @app.middleware("http")
    async def inject_faults(request: Request, call_next):
        ledger: LedgerState = request.app.state.ledger
        path = request.url.path
        if path.startswith(API_PREFIX):
            path = path[len(API_PREFIX):]
        ledger.requests.append((request.method, path))

        fault = ledger.take_fault(request.method, path)
        if fault is not None:
            return JSONResponse(
                status_code=fault.status_code,
                content={"success": False, "error": {"message": fault.message}},
            )
        return await call_next(request)

    @app.exception_handler(MockLedgerError)
    async def ledger_error_handler(request: Request, exc: MockLedgerError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": {"message": exc.message}},
        )

    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(router, prefix=API_PREFIX)
    return app


app = create_app()
