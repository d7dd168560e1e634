"""
Purchase evaluation.

Pure computation of order total, grouped summary and overdraft
admissibility. No I/O, no hidden state.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional

from .records import safe_decimal


@dataclass(frozen=True)
class ItemSummary:
    product_id: Optional[str]
    name: str
    quantity: int
    amount: Decimal


@dataclass(frozen=True)
class EvaluationMessages:
    has_customer: bool
    has_items: bool
    overdraft_breached: bool
    available_until_limit: Decimal
    overdraft_limit: Decimal


@dataclass(frozen=True)
class PurchaseEvaluation:
    ok: bool
    total: Decimal
    new_balance: Decimal
    items_summary: List[ItemSummary] = field(default_factory=list)
    messages: Optional[EvaluationMessages] = None


def _field(item, name, default=None):
    if isinstance(item, dict):
        return item.get(name, default)
    return getattr(item, name, default)


def _unit_price(item, price_by_product) -> Decimal:
    effective = _field(item, 'effective_price')
    if effective is not None:
        return safe_decimal(effective)
    price = _field(item, 'price')
    if price is None:
        price = price_by_product.get(str(_field(item, 'product_id')))
    return safe_decimal(price)


def _quantity(item) -> int:
    quantity = _field(item, 'quantity')
    if quantity is None:
        return 1
    return int(safe_decimal(quantity, fallback=1))


def evaluate_purchase(
    *,
    customer,
    current_balance,
    order_items: Iterable,
    products: Iterable = (),
    max_overdraft=0
) -> PurchaseEvaluation:
    """
    Evaluate a cart against a balance and an overdraft floor.

    Args:
        customer: Selected customer, or None
        current_balance: Balance before the purchase
        order_items: Cart lines (OrderLine or dicts); quantity defaults to 1
        products: Catalog records used when a line carries no price
        max_overdraft: Lowest balance allowed after the purchase (<= 0)

    Returns:
        PurchaseEvaluation; landing exactly on the floor is accepted
    """
    order_items = list(order_items or [])
    price_by_product = {str(_field(p, 'id')): _field(p, 'price') for p in products or ()}

    balance = safe_decimal(current_balance)
    floor = safe_decimal(max_overdraft)

    total = Decimal('0')
    grouped = {}
    for item in order_items:
        quantity = _quantity(item)
        amount = _unit_price(item, price_by_product) * quantity
        total += amount

        product_id = _field(item, 'product_id')
        key = str(product_id) if product_id is not None else None
        name = _field(item, 'name') or ''
        if key in grouped:
            summary = grouped[key]
            grouped[key] = ItemSummary(key, summary.name, summary.quantity + quantity, summary.amount + amount)
        else:
            grouped[key] = ItemSummary(key, name, quantity, amount)

    new_balance = balance - total
    overdraft_breached = new_balance < floor
    has_customer = customer is not None
    has_items = bool(order_items)

    return PurchaseEvaluation(
        ok=has_customer and has_items and not overdraft_breached,
        total=total,
        new_balance=new_balance,
        items_summary=list(grouped.values()),
        messages=EvaluationMessages(
            has_customer=has_customer,
            has_items=has_items,
            overdraft_breached=overdraft_breached,
            available_until_limit=balance - floor,
            overdraft_limit=floor,
        ),
    )
