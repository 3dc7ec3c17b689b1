"""Aging and payment reports derived from ledger accounts"""

from datetime import date, datetime
from typing import Dict, Iterable, List

from ledger_sync.domain.aging import empty_buckets
from ledger_sync.domain.ledger import refresh_account
from ledger_sync.domain.models import (
    AgingBucket,
    AgingReport,
    AgingReportRow,
    DailyPaymentsReport,
    DebtAccount,
    Transaction,
    TransactionKind,
)
from ledger_sync.utils.date_utils import as_date


def build_aging_report(
    accounts: Iterable[DebtAccount],
    as_of: date | datetime,
    customer_names: Dict[str, str] | None = None,
) -> AgingReport:
    """
    Aging report as of a report date.

    Accounts with no outstanding balance are left out. Each account's
    collection status is re-evaluated as a side effect of the aggregation.
    """
    names = customer_names or {}
    report_date = as_date(as_of)
    rows: List[AgingReportRow] = []
    totals = empty_buckets()

    for account in accounts:
        snapshot = refresh_account(account, report_date)
        if snapshot.balance_cents <= 0:
            continue

        rows.append(
            AgingReportRow(
                customer_id=account.customer_id,
                customer_name=names.get(account.customer_id, ""),
                buckets=dict(snapshot.bucket_totals),
                total_owed_cents=snapshot.balance_cents,
                collection_status=account.collection_status,
            )
        )
        for bucket, amount in snapshot.bucket_totals.items():
            totals[bucket] += amount

    return AgingReport(as_of=report_date, rows=rows, totals=totals)


def high_risk_customers(rows: Iterable[AgingReportRow], limit: int = 5) -> List[AgingReportRow]:
    """Largest OVER_90 exposure first, ties broken by total owed"""
    return sorted(
        rows,
        key=lambda r: (r.buckets.get(AgingBucket.OVER_90, 0), r.total_owed_cents),
        reverse=True,
    )[:limit]


def daily_payments(transactions: Iterable[Transaction], day: date | datetime) -> DailyPaymentsReport:
    target = as_date(day)
    payments = [
        t for t in transactions
        if t.kind == TransactionKind.PAYMENT and as_date(t.occurred_at) == target
    ]
    return DailyPaymentsReport(
        day=target,
        total_amount_cents=sum(abs(t.amount_cents) for t in payments),
        payment_count=len(payments),
        payments=sorted(payments, key=lambda t: t.sort_key),
    )
