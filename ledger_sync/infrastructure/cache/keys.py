"""
Cache key factory.

Keys are hierarchical tuples: (entity, operation, *filters). Invalidation is
prefix-based, so ("payments", "list") covers every filtered payments list.
"""

from datetime import date
from typing import Any, Dict, Optional, Tuple

CacheKey = Tuple[Any, ...]


def freeze_filters(filters: Optional[Dict[str, Any]]) -> Tuple[Tuple[str, Any], ...]:
    """Hashable, order-independent form of a filter dict; None values dropped"""
    if not filters:
        return ()
    return tuple(sorted((k, v) for k, v in filters.items() if v is not None))


def is_prefix(prefix: CacheKey, key: CacheKey) -> bool:
    return key[: len(prefix)] == prefix


# Customers

def customers_all() -> CacheKey:
    return ("customers",)


def customers_list(filters: Optional[Dict[str, Any]] = None) -> CacheKey:
    base = ("customers", "list")
    return base + (freeze_filters(filters),) if filters else base


def customer_detail(customer_id: str) -> CacheKey:
    return ("customers", "detail", customer_id)


# Debts

def debt_summary() -> CacheKey:
    return ("debts", "summary")


def customer_history(customer_id: str) -> CacheKey:
    return ("debts", "customer-history", customer_id)


# Payments

def payments_list(filters: Optional[Dict[str, Any]] = None) -> CacheKey:
    base = ("payments", "list")
    return base + (freeze_filters(filters),) if filters else base


def customer_outstanding(customer_id: str) -> CacheKey:
    return ("payments", "customer-outstanding", customer_id)


def outstanding_balances() -> CacheKey:
    return ("payments", "outstanding")


# Reports

def reports() -> CacheKey:
    return ("reports",)


def aging_report(as_of: Optional[date] = None) -> CacheKey:
    base = ("reports", "aging")
    return base + (as_of.isoformat(),) if as_of else base


def daily_payments(day: Optional[date] = None) -> CacheKey:
    base = ("reports", "daily-payments")
    return base + (day.isoformat(),) if day else base


# Reminders

def reminder_history(customer_id: str) -> CacheKey:
    return ("reminders", "customer-history", customer_id)


def reminders_needing(days_since_last_reminder: Optional[int] = None) -> CacheKey:
    base = ("reminders", "needing")
    return base + (days_since_last_reminder,) if days_since_last_reminder is not None else base
