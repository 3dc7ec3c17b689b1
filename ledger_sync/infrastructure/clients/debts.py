"""Ledger REST API client for debt accounts, payments, reports and reminders"""

from datetime import date
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ledger_sync.domain.exceptions import AbsenceError, InvalidResponseError
from ledger_sync.domain.models import (
    AgingReport,
    CustomerDetail,
    DailyPaymentsReport,
    DebtSummary,
    Mutation,
    MutationType,
    OutstandingBalance,
    Page,
    Payment,
    ReminderNote,
    Transaction,
)
from ledger_sync.infrastructure.clients.schemas import (
    AgingReportSchema,
    CustomerDetailSchema,
    CustomerPageSchema,
    DailyPaymentsSchema,
    DebtSummarySchema,
    HistorySchema,
    MutationResponseSchema,
    OutstandingBalanceSchema,
    PaymentSchema,
    ReminderNoteSchema,
)
from ledger_sync.infrastructure.clients.transport import ApiTransport

S = TypeVar("S", bound=BaseModel)

# POST target per balance-affecting mutation
MUTATION_ENDPOINTS = {
    MutationType.CHARGE: "charge",
    MutationType.PAYMENT: "payment",
    MutationType.ADJUSTMENT: "adjustment",
    MutationType.MARK_PAID: "mark-paid",
}


def _parse(schema: Type[S], data: Any) -> S:
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise InvalidResponseError(f"Invalid {schema.__name__} payload: {e}") from e


def _items(data: Any, key: str) -> List[Any]:
    """List payloads arrive either bare or under a named key"""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        return data.get(key) or []
    raise InvalidResponseError(f"Expected a list of {key}, got {type(data).__name__}")


class DebtsClient:
    """Client for the ledger API; single requests only, retries live in the caller"""

    def __init__(self, transport: ApiTransport):
        self.transport = transport

    # Reads

    async def get_summary(self) -> DebtSummary:
        data = await self.transport.get("/debts/summary")
        return _parse(DebtSummarySchema, data).to_domain()

    async def get_customer_outstanding(self, customer_id: str) -> Optional[OutstandingBalance]:
        """Outstanding balance, or None when the customer has no debt record (404)"""
        try:
            data = await self.transport.get(f"/customers/{customer_id}/outstanding")
        except AbsenceError:
            return None
        return _parse(OutstandingBalanceSchema, data).to_domain()

    async def list_customers(self, filters: Optional[Dict[str, Any]] = None) -> Page:
        data = await self.transport.get("/debts/customers", params=filters)
        if isinstance(data, list):
            data = {"data": data, "pagination": {"total": len(data)}}
        page = _parse(CustomerPageSchema, data)
        return Page(
            items=[item.to_domain() for item in page.data],
            page=page.pagination.page,
            limit=page.pagination.limit,
            total=page.pagination.total,
        )

    async def get_customer_detail(self, customer_id: str) -> Optional[CustomerDetail]:
        try:
            data = await self.transport.get(f"/debts/customers/{customer_id}")
        except AbsenceError:
            return None
        return _parse(CustomerDetailSchema, data).to_domain()

    async def get_customer_history(self, customer_id: str) -> List[Transaction]:
        try:
            data = await self.transport.get(f"/debts/customers/{customer_id}/history")
        except AbsenceError:
            return []
        history = _parse(HistorySchema, {"transactions": _items(data, "transactions")})
        return [t.to_domain() for t in history.transactions]

    async def list_payments(self, filters: Optional[Dict[str, Any]] = None) -> List[Payment]:
        data = await self.transport.get("/payments", params=filters)
        return [_parse(PaymentSchema, item).to_domain() for item in _items(data, "payments")]

    async def list_outstanding_balances(self) -> List[OutstandingBalance]:
        data = await self.transport.get("/payments/outstanding")
        return [_parse(OutstandingBalanceSchema, item).to_domain() for item in _items(data, "customers")]

    async def get_aging_report(self, as_of: date) -> AgingReport:
        data = await self.transport.get("/reports/aging", params={"date": as_of.isoformat()})
        return _parse(AgingReportSchema, data).to_domain(as_of)

    async def get_daily_payments(self, day: date) -> DailyPaymentsReport:
        data = await self.transport.get("/reports/daily-payments", params={"date": day.isoformat()})
        return _parse(DailyPaymentsSchema, data).to_domain(day)

    async def get_reminder_history(self, customer_id: str) -> List[ReminderNote]:
        try:
            data = await self.transport.get(f"/customers/{customer_id}/reminders")
        except AbsenceError:
            return []
        return [_parse(ReminderNoteSchema, item).to_domain() for item in _items(data, "reminders")]

    async def get_customers_needing_reminders(self, days_since_last_reminder: int = 7) -> List[OutstandingBalance]:
        data = await self.transport.get(
            "/reminders/overdue",
            params={"daysSinceLastReminder": days_since_last_reminder},
        )
        return [_parse(OutstandingBalanceSchema, item).to_domain() for item in _items(data, "customers")]

    # Mutations

    async def send_mutation(self, mutation: Mutation) -> Optional[Transaction]:
        """
        POST one mutation and return the committed transaction, if the server sent one.

        mark-paid may answer with an account snapshot only; reminder notes never
        carry a transaction.
        """
        if mutation.mutation_type == MutationType.REMINDER_NOTE:
            await self.transport.post(
                "/reminders/notes",
                json={"customerId": mutation.customer_id, **mutation.payload},
            )
            return None

        endpoint = MUTATION_ENDPOINTS[mutation.mutation_type]
        data = await self.transport.post(
            f"/debts/customers/{mutation.customer_id}/{endpoint}",
            json=mutation.payload,
        )
        if not isinstance(data, dict):
            return None
        response = _parse(MutationResponseSchema, data)
        return response.transaction.to_domain() if response.transaction else None
