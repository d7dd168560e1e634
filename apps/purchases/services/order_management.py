"""
Order management service.

The cart is a list of OrderLine, one line per unit. Adding enforces the
item ceiling and per-product limits and substitutes the refill price when
the child is eligible. Removing never re-checks limits.
"""

import dataclasses
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, List, Optional

import structlog
from django.conf import settings

from .data_source import CafeDataSource, get_data_source
from .exceptions import DataSourceError
from .limit_resolver import (
    LimitSnapshotEntry,
    can_purchase,
    get_child_product_limit_snapshot,
    limit_reached_message,
)
from .records import ProductInfo, safe_decimal
from .refill_eligibility import get_refill_eligibility


logger = structlog.get_logger(__name__)

REASON_LIMIT = 'limit'
REASON_PRODUCT_LIMIT = 'product-limit'

MSG_ORDER_FULL = 'An order can hold at most {max_items} items.'


@dataclass(frozen=True)
class OrderLine:
    product_id: str
    name: str
    price: Decimal
    emoji: str = ''
    effective_price: Optional[Decimal] = None
    effective_name: Optional[str] = None
    is_refill: bool = False

    @classmethod
    def from_product(cls, product: ProductInfo) -> 'OrderLine':
        return cls(
            product_id=str(product.id),
            name=product.name,
            price=safe_decimal(product.price),
            emoji=product.emoji,
        )

    def as_refill(self, refill_price) -> 'OrderLine':
        return dataclasses.replace(
            self,
            effective_price=safe_decimal(refill_price),
            effective_name=f'{self.name} Refill',
            is_refill=True,
        )

    @property
    def unit_price(self) -> Decimal:
        if self.effective_price is not None:
            return self.effective_price
        return safe_decimal(self.price)

    @property
    def display_name(self) -> str:
        return self.effective_name or self.name


@dataclass(frozen=True)
class AddResult:
    success: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    line: Optional[OrderLine] = None


class ChildLimitSnapshotStore:
    """
    Memoised limit snapshot for the selected child.

    Holds one snapshot at a time; asking for another child refetches.
    Call `invalidate()` after a sale, deposit or balance edit.
    """

    def __init__(self, loader: Optional[Callable[..., Dict[str, LimitSnapshotEntry]]] = None):
        self._loader = loader or get_child_product_limit_snapshot
        self._child_id = None
        self._snapshot: Optional[Dict[str, LimitSnapshotEntry]] = None

    def get(self, child_id, institution_id=None, *, data_source=None) -> Dict[str, LimitSnapshotEntry]:
        if self._snapshot is None or self._child_id != child_id:
            self._snapshot = self._loader(child_id, institution_id, data_source=data_source)
            self._child_id = child_id
        return self._snapshot

    def peek(self) -> Optional[Dict[str, LimitSnapshotEntry]]:
        return self._snapshot

    @property
    def child_id(self):
        return self._child_id

    def invalidate(self):
        self._child_id = None
        self._snapshot = None


def count_in_order(order: List[OrderLine], product_id, refill_only: bool = False) -> int:
    target = str(product_id)
    return sum(
        1 for line in order
        if line.product_id == target and (line.is_refill or not refill_only)
    )


def calculate_order_total(order: List[OrderLine]) -> Decimal:
    return sum((line.unit_price for line in order), Decimal('0'))


def clear_order(order: List[OrderLine]) -> List[OrderLine]:
    order.clear()
    return order


def add_product_to_order(
    order: List[OrderLine],
    product: ProductInfo,
    max_items: Optional[int] = None,
    *,
    session=None,
    data_source: Optional[CafeDataSource] = None
) -> AddResult:
    """
    Add one unit of a product to the cart.

    Args:
        order: Cart to mutate
        product: Catalog product being added
        max_items: Cart ceiling, defaults to FLANGO['MAX_ITEMS_PER_ORDER']
        session: Café session supplying the selected customer and its
            limit snapshot; without one only the ceiling is enforced

    Returns:
        AddResult; reason is 'limit' for a full cart and 'product-limit'
        when a daily cap, a disabled product or the daily budget blocks it
    """
    if max_items is None:
        max_items = settings.FLANGO['MAX_ITEMS_PER_ORDER']

    if len(order) >= max_items:
        return AddResult(False, REASON_LIMIT, MSG_ORDER_FULL.format(max_items=max_items))

    line = OrderLine.from_product(product)
    customer = session.get_current_customer() if session is not None else None

    if customer is not None:
        data_source = data_source or getattr(session, 'data_source', None) or get_data_source()
        in_cart = count_in_order(order, product.id)

        snapshot = session.snapshots.get(customer.id, customer.institution_id, data_source=data_source)
        entry = snapshot.get(str(product.id))
        if entry is not None and entry.effective_max_per_day is not None:
            if entry.todays_qty + in_cart >= entry.effective_max_per_day:
                return AddResult(
                    False,
                    REASON_PRODUCT_LIMIT,
                    limit_reached_message(entry.effective_max_per_day, entry.limit_source, product.name),
                )

        try:
            decision = can_purchase(
                product.id,
                customer.id,
                order,
                customer.institution_id,
                product_name_fallback=product.name,
                data_source=data_source,
            )
        except DataSourceError as exc:
            logger.warning("limit_check_failed", product_id=str(product.id), error=str(exc))
            return AddResult(False, REASON_PRODUCT_LIMIT, str(exc))
        if not decision.allowed:
            return AddResult(False, REASON_PRODUCT_LIMIT, decision.message)

        if product.refill_enabled:
            eligibility = get_refill_eligibility(
                customer.id,
                product.id,
                product,
                customer.institution_id,
                data_source=data_source,
            )
            refills_in_cart = count_in_order(order, product.id, refill_only=True)
            max_refills = product.refill_max_refills or 0
            if eligibility.eligible and (
                max_refills == 0 or eligibility.refills_used + refills_in_cart < max_refills
            ):
                line = line.as_refill(product.refill_price)

    order.append(line)
    if session is not None:
        session.on_order_changed()
    return AddResult(True, line=line)


def remove_product_from_order(order: List[OrderLine], index: Optional[int] = None, *, session=None) -> Optional[OrderLine]:
    """
    Remove a line by index (default: the last one).

    Returns:
        The removed line, or None for an empty order or an index out of range
    """
    if not order:
        return None
    if index is None:
        index = len(order) - 1
    if index < 0 or index >= len(order):
        return None

    removed = order.pop(index)
    if session is not None:
        session.on_order_changed(unlock_only=True)
    return removed
