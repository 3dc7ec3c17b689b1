"""
Read-view catalogue.

Each factory pairs a cache key with the client call that fills it and the
view's staleness window.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Dict, Optional

from ledger_sync.infrastructure.cache import keys
from ledger_sync.infrastructure.cache.keys import CacheKey
from ledger_sync.infrastructure.cache.store import Fetcher
from ledger_sync.infrastructure.clients.debts import DebtsClient

SUMMARY_STALE_AFTER = timedelta(seconds=30)
CUSTOMER_STALE_AFTER = timedelta(seconds=15)
HISTORY_STALE_AFTER = timedelta(seconds=60)
OUTSTANDING_STALE_AFTER = timedelta(minutes=5)
REPORTS_STALE_AFTER = timedelta(seconds=60)


@dataclass(frozen=True)
class ViewSpec:
    key: CacheKey
    fetcher: Fetcher
    stale_after: Optional[timedelta] = None


def debt_summary(client: DebtsClient) -> ViewSpec:
    return ViewSpec(keys.debt_summary(), client.get_summary, SUMMARY_STALE_AFTER)


def customers(client: DebtsClient, filters: Optional[Dict[str, Any]] = None) -> ViewSpec:
    return ViewSpec(
        keys.customers_list(filters),
        lambda: client.list_customers(filters),
        CUSTOMER_STALE_AFTER,
    )


def customer_detail(client: DebtsClient, customer_id: str) -> ViewSpec:
    return ViewSpec(
        keys.customer_detail(customer_id),
        lambda: client.get_customer_detail(customer_id),
        CUSTOMER_STALE_AFTER,
    )


def customer_history(client: DebtsClient, customer_id: str) -> ViewSpec:
    return ViewSpec(
        keys.customer_history(customer_id),
        lambda: client.get_customer_history(customer_id),
        HISTORY_STALE_AFTER,
    )


def payments(client: DebtsClient, filters: Optional[Dict[str, Any]] = None) -> ViewSpec:
    return ViewSpec(
        keys.payments_list(filters),
        lambda: client.list_payments(filters),
        SUMMARY_STALE_AFTER,
    )


def customer_outstanding(client: DebtsClient, customer_id: str) -> ViewSpec:
    """None when the customer has no debt record"""
    return ViewSpec(
        keys.customer_outstanding(customer_id),
        lambda: client.get_customer_outstanding(customer_id),
        OUTSTANDING_STALE_AFTER,
    )


def outstanding_balances(client: DebtsClient) -> ViewSpec:
    return ViewSpec(keys.outstanding_balances(), client.list_outstanding_balances, OUTSTANDING_STALE_AFTER)


def aging_report(client: DebtsClient, as_of: date) -> ViewSpec:
    return ViewSpec(
        keys.aging_report(as_of),
        lambda: client.get_aging_report(as_of),
        REPORTS_STALE_AFTER,
    )


def daily_payments(client: DebtsClient, day: date) -> ViewSpec:
    return ViewSpec(
        keys.daily_payments(day),
        lambda: client.get_daily_payments(day),
        REPORTS_STALE_AFTER,
    )


def reminder_history(client: DebtsClient, customer_id: str) -> ViewSpec:
    return ViewSpec(
        keys.reminder_history(customer_id),
        lambda: client.get_reminder_history(customer_id),
        HISTORY_STALE_AFTER,
    )


def customers_needing_reminders(client: DebtsClient, days_since_last_reminder: int = 7) -> ViewSpec:
    return ViewSpec(
        keys.reminders_needing(days_since_last_reminder),
        lambda: client.get_customers_needing_reminders(days_since_last_reminder),
        OUTSTANDING_STALE_AFTER,
    )
