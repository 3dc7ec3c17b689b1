"""Ledger aggregation - folds committed transactions into balance and aging buckets"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, List, Optional

from ledger_sync.domain.aging import age_in_days, classify, empty_buckets
from ledger_sync.domain.collection import evaluate_status
from ledger_sync.domain.models import (
    CollectionStatus,
    DebtAccount,
    LedgerSnapshot,
    Transaction,
    TransactionKind,
)
from ledger_sync.utils.date_utils import as_date, utc_now


@dataclass
class _OpenCharge:
    occurred_on: date
    remaining_cents: int


def aggregate(transactions: Iterable[Transaction], as_of: date | datetime | None = None) -> LedgerSnapshot:
    """
    Fold an account's transactions into a balance and per-bucket subtotals.

    Allocation rules (aging-report semantics, must stay stable for report reproducibility):
    - Transactions are applied in (occurred_at, created_at) order; anything after as_of is ignored
    - A positive amount opens a charge, after first absorbing any unapplied credit
    - Payments and negative adjustments pay down open charges oldest first,
      so OVER_90 is settled before CURRENT
    - Credit left over once every charge is settled is reported as a negative CURRENT amount

    Guarantee: sum(bucket_totals) == balance_cents == sum of signed amounts.
    """
    report_date = as_date(as_of) if as_of is not None else utc_now().date()
    ordered = sorted(
        (t for t in transactions if as_date(t.occurred_at) <= report_date),
        key=lambda t: t.sort_key,
    )

    open_charges: List[_OpenCharge] = []
    unapplied_credit = 0
    balance = 0
    last_payment_date: Optional[date] = None

    for txn in ordered:
        signed = txn.signed_amount_cents
        balance += signed

        if txn.kind == TransactionKind.PAYMENT:
            last_payment_date = as_date(txn.occurred_at)

        if signed > 0:
            absorbed = min(signed, unapplied_credit)
            unapplied_credit -= absorbed
            if signed > absorbed:
                open_charges.append(_OpenCharge(as_date(txn.occurred_at), signed - absorbed))
        elif signed < 0:
            unapplied_credit += _apply_credit(open_charges, -signed)

    bucket_totals = empty_buckets()
    bucket_counts = empty_buckets()
    for charge in open_charges:
        bucket = classify(age_in_days(charge.occurred_on, report_date))
        bucket_totals[bucket] += charge.remaining_cents
        bucket_counts[bucket] += 1

    if unapplied_credit:
        bucket_totals[classify(0)] -= unapplied_credit

    return LedgerSnapshot(
        as_of=report_date,
        balance_cents=balance,
        bucket_totals=bucket_totals,
        bucket_counts=bucket_counts,
        oldest_open_charge_date=open_charges[0].occurred_on if open_charges else None,
        last_payment_date=last_payment_date,
    )


def _apply_credit(open_charges: List[_OpenCharge], credit_cents: int) -> int:
    """Settle open charges oldest first; returns credit that found no charge"""
    while credit_cents and open_charges:
        oldest = open_charges[0]
        applied = min(oldest.remaining_cents, credit_cents)
        oldest.remaining_cents -= applied
        credit_cents -= applied
        if oldest.remaining_cents == 0:
            open_charges.pop(0)
    return credit_cents


def build_account(
    customer_id: str,
    transactions: Iterable[Transaction],
    collection_status: Optional[CollectionStatus] = None,
) -> DebtAccount:
    account = DebtAccount(customer_id=customer_id, transactions=list(transactions))
    if collection_status is not None:
        account.collection_status = collection_status
    return account


def refresh_account(account: DebtAccount, as_of: date | datetime | None = None) -> LedgerSnapshot:
    """Aggregate the account and re-evaluate its collection status in place"""
    snapshot = aggregate(account.transactions, as_of)
    account.collection_status = evaluate_status(account.collection_status, snapshot)
    return snapshot
