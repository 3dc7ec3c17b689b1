"""Cache invalidation graph - committed mutation → cache-key prefixes to mark stale"""

from typing import List

from ledger_sync.domain.models import MutationType
from ledger_sync.infrastructure.cache import keys
from ledger_sync.infrastructure.cache.keys import CacheKey

BALANCE_MUTATIONS = frozenset({
    MutationType.CHARGE,
    MutationType.PAYMENT,
    MutationType.ADJUSTMENT,
    MutationType.MARK_PAID,
})


def keys_to_invalidate(mutation_type: MutationType, customer_id: str) -> List[CacheKey]:
    """
    Static dependency map. Only call after the server confirmed the commit.

    Balance-affecting mutations stale the customer's detail, every customers
    list, the debt summary and every payments list, plus the per-customer
    history/outstanding views and reports computed from the same ledger.
    Reminder notes only touch reminder views and the outstanding list.
    """
    if mutation_type in BALANCE_MUTATIONS:
        return [
            keys.customer_detail(customer_id),
            keys.customers_list(),
            keys.debt_summary(),
            keys.payments_list(),
            keys.customer_history(customer_id),
            keys.customer_outstanding(customer_id),
            keys.outstanding_balances(),
            keys.reports(),
        ]

    if mutation_type == MutationType.REMINDER_NOTE:
        return [
            keys.reminder_history(customer_id),
            keys.reminders_needing(),
            keys.outstanding_balances(),
        ]

    raise ValueError(f"Unknown mutation type: {mutation_type}")
