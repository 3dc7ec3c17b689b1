"""Collection status state machine and payment status projection"""

from datetime import date, datetime
from typing import Optional

from ledger_sync.domain.exceptions import InvalidStatusTransitionError
from ledger_sync.domain.models import AgingBucket, CollectionStatus, LedgerSnapshot, PaymentStatus
from ledger_sync.utils.date_utils import as_date


def evaluate_status(current: CollectionStatus, snapshot: LedgerSnapshot) -> CollectionStatus:
    """
    Re-derive collection status after an aggregation.

    - SUSPENDED is sticky: balance changes never leave it
    - OVERDUE while any bucket older than CURRENT holds a non-zero amount
    - ACTIVE otherwise
    """
    if current == CollectionStatus.SUSPENDED:
        return CollectionStatus.SUSPENDED

    has_aged_debt = any(
        amount != 0
        for bucket, amount in snapshot.bucket_totals.items()
        if bucket != AgingBucket.CURRENT
    )
    return CollectionStatus.OVERDUE if has_aged_debt else CollectionStatus.ACTIVE


def suspend(current: CollectionStatus) -> CollectionStatus:
    """Administrative collections hold; allowed from any state"""
    return CollectionStatus.SUSPENDED


def reactivate(current: CollectionStatus) -> CollectionStatus:
    """Lift a collections hold. The next evaluation may move the account to OVERDUE."""
    if current != CollectionStatus.SUSPENDED:
        raise InvalidStatusTransitionError(f"Cannot reactivate an account in status {current.value}")
    return CollectionStatus.ACTIVE


def payment_status(
    amount_due_cents: int,
    paid_cents: int,
    due_date: Optional[date | datetime],
    as_of: date | datetime,
    collection_status: CollectionStatus = CollectionStatus.ACTIVE,
) -> PaymentStatus:
    """Presentation-facing status of one invoice; independent of the account state machine"""
    if paid_cents >= amount_due_cents:
        return PaymentStatus.PAID
    if collection_status == CollectionStatus.SUSPENDED:
        return PaymentStatus.COLLECTION
    if due_date is not None and as_date(as_of) > as_date(due_date):
        return PaymentStatus.OVERDUE
    if paid_cents > 0:
        return PaymentStatus.PARTIAL
    return PaymentStatus.UNPAID
