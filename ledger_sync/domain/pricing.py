"""Pricing resolver - effective value of historical sales under a customer price override"""

from datetime import date, datetime
from typing import Iterable, List, Optional

from ledger_sync.domain.models import PricedSale, PriceOverride, Sale, Transaction, TransactionKind
from ledger_sync.utils.date_utils import as_date

DEFAULT_EPSILON_CENTS = 1  # 0.01 currency unit


def is_override_active(override: Optional[PriceOverride], now: date | datetime) -> bool:
    """Override has a custom price and now falls within [active_from, active_until]"""
    if override is None or override.custom_unit_price_cents is None:
        return False

    today = as_date(now)
    if override.active_from is not None and today < override.active_from:
        return False
    if override.active_until is not None and today > override.active_until:
        return False
    return True


def effective_unit_price(
    sale: Sale,
    override: Optional[PriceOverride],
    now: date | datetime,
    base_unit_price_cents: int = 0,
    custom_pricing_enabled: bool = True,
) -> int:
    """
    Unit price used to value a sale on every read.

    Precedence:
    1. Active customer override (only when custom pricing is enabled)
    2. Unit price stored on the sale
    3. Customer/global base price
    """
    if custom_pricing_enabled and is_override_active(override, now):
        return override.custom_unit_price_cents
    if sale.unit_price_cents is not None:
        return sale.unit_price_cents
    return base_unit_price_cents


def price_sale(
    sale: Sale,
    override: Optional[PriceOverride],
    now: date | datetime,
    base_unit_price_cents: int = 0,
    custom_pricing_enabled: bool = True,
    epsilon_cents: int = DEFAULT_EPSILON_CENTS,
) -> PricedSale:
    """
    Recompute a sale's total with the effective price.

    The stored total is kept alongside; has_discrepancy is set when the two differ
    by more than epsilon so the caller can render both values.

    Example:
        override 5.00 active, sale quantity=3 stored at 4.00 (total 12.00)
        → effective_total 15.00, discrepancy 3.00, has_discrepancy True
    """
    override_applied = custom_pricing_enabled and is_override_active(override, now)
    unit_price = effective_unit_price(sale, override, now, base_unit_price_cents, custom_pricing_enabled)
    effective_total = sale.quantity * unit_price

    return PricedSale(
        sale=sale,
        effective_unit_price_cents=unit_price,
        effective_total_cents=effective_total,
        override_applied=override_applied,
        has_discrepancy=abs(effective_total - sale.total_cents) > epsilon_cents,
    )


def price_charges(
    transactions: Iterable[Transaction],
    override: Optional[PriceOverride],
    now: date | datetime,
    **kwargs,
) -> List[PricedSale]:
    """Price every quantity-bearing charge of an account history"""
    return [
        price_sale(Sale.from_transaction(txn), override, now, **kwargs)
        for txn in transactions
        if txn.kind == TransactionKind.CHARGE and txn.quantity
    ]
