"""
Limit resolver service.

Decides whether a child may buy one more unit of a product today. The
effective daily cap is the parent override when one exists (0 blocks the
product entirely), otherwise the institution's club cap.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, Optional

import structlog
from django.conf import settings

from .data_source import CafeDataSource, get_data_source
from .exceptions import DataSourceError
from .records import SalesLookup, safe_decimal
from .sales_cache import get_todays_sales_for_child


logger = structlog.get_logger(__name__)

MSG_MISSING_IDS = 'Product or customer missing.'
MSG_MISSING_INSTITUTION = 'No institution selected; purchase limits cannot be checked.'
MSG_PRODUCT_NOT_FOUND = 'The product does not exist.'
MSG_PRODUCT_DISABLED = 'The product is not available right now.'
MSG_PARENT_BLOCKED = 'This item is blocked for you. It is an agreement with your parents.'
MSG_PARENT_LIMIT_REACHED = (
    'You have reached how many of this item you may buy today. '
    'It is agreed with your parents.'
)
MSG_DAILY_BUDGET_REACHED = (
    'You have reached your daily maximum amount in the café. '
    'Talk to an adult if you are unsure about anything.'
)

LIMIT_SOURCE_PARENT = 'parent'
LIMIT_SOURCE_CLUB = 'club'


@dataclass(frozen=True)
class LimitDecision:
    allowed: bool
    message: Optional[str] = None


@dataclass(frozen=True)
class LimitSnapshotEntry:
    effective_max_per_day: Optional[int]
    todays_qty: int
    limit_source: Optional[str] = None
    refill_enabled: bool = False
    refill_price: Optional[Decimal] = None
    refill_time_limit_minutes: int = 0
    refill_max_refills: int = 0

    @property
    def is_blocked(self) -> bool:
        return self.effective_max_per_day == 0


def resolve_effective_limit(parent_max, club_max):
    """Return (effective_max, source). A parent override always wins, including 0."""
    if parent_max is not None:
        return parent_max, LIMIT_SOURCE_PARENT
    if club_max is not None:
        return club_max, LIMIT_SOURCE_CLUB
    return None, None


def limit_reached_message(effective_max: int, limit_source: Optional[str], product_name: str) -> str:
    if limit_source == LIMIT_SOURCE_PARENT:
        if effective_max == 0:
            return MSG_PARENT_BLOCKED
        return MSG_PARENT_LIMIT_REACHED
    return (
        f'Today you may buy at most {effective_max} of {product_name}. '
        'The child has already reached the limit.'
    )


def _line_product_id(line) -> Optional[str]:
    value = line.get('product_id') if isinstance(line, dict) else getattr(line, 'product_id', None)
    return str(value) if value is not None else None


def count_product_in_lines(lines: Iterable, product_id) -> int:
    target = str(product_id)
    return sum(1 for line in lines or () if _line_product_id(line) == target)


def todays_quantity_for_product(lookup: SalesLookup, product_id, product_name: Optional[str] = None) -> int:
    """Units bought today. Items without a product id fall back to a name match."""
    target = str(product_id)
    total = 0
    for row in lookup.rows:
        for item in row.items:
            if item.product_id is not None:
                matches = item.product_id == target
            else:
                matches = bool(product_name) and item.product_name == product_name
            if matches:
                total += item.quantity
    return total


def todays_total_spend(lookup: SalesLookup) -> Decimal:
    return sum((row.total for row in lookup.rows), Decimal('0'))


def can_purchase(
    product_id,
    child_id,
    order_lines: Iterable = (),
    institution_id=None,
    product_name_fallback: Optional[str] = None,
    is_final_check: bool = False,
    *,
    data_source: Optional[CafeDataSource] = None
) -> LimitDecision:
    """
    Check whether one more unit of a product may be bought by a child.

    Args:
        product_id: Product being added
        child_id: Selected customer
        order_lines: Current cart (one line per unit)
        institution_id: Café institution; limits fail open without it when
            FLANGO['LIMITS_FAIL_OPEN_WITHOUT_INSTITUTION'] is set
        product_name_fallback: Name used in messages and for sale items
            that lost their product id
        is_final_check: Checkout verification; the cart is not counted
            again since it is the purchase being verified

    Returns:
        LimitDecision with a user-facing message when denied

    Raises:
        DataSourceError: If product, limit or profile lookups fail
    """
    if not product_id or not child_id:
        return LimitDecision(False, MSG_MISSING_IDS)

    if not institution_id:
        if settings.FLANGO['LIMITS_FAIL_OPEN_WITHOUT_INSTITUTION']:
            logger.info("limit_check_fail_open", product_id=str(product_id), child_id=str(child_id))
            return LimitDecision(True)
        return LimitDecision(False, MSG_MISSING_INSTITUTION)

    data_source = data_source or get_data_source()

    product = data_source.get_product(product_id)
    if product is None:
        return LimitDecision(False, MSG_PRODUCT_NOT_FOUND)
    if not product.is_enabled:
        return LimitDecision(False, MSG_PRODUCT_DISABLED)

    product_name = product.name or product_name_fallback or 'the product'

    club_max = data_source.get_institution_limit(institution_id, product_id)
    parent_max = data_source.get_parent_limit(child_id, product_id)
    effective_max, limit_source = resolve_effective_limit(parent_max, club_max)

    lookup = None
    if effective_max is not None:
        if effective_max == 0:
            return LimitDecision(False, limit_reached_message(0, limit_source, product_name))

        lookup = get_todays_sales_for_child(child_id, institution_id, data_source=data_source)
        todays_qty = todays_quantity_for_product(lookup, product_id, product_name)
        qty_in_cart = 0 if is_final_check else count_product_in_lines(order_lines, product_id)

        if todays_qty + qty_in_cart >= effective_max:
            return LimitDecision(False, limit_reached_message(effective_max, limit_source, product_name))

    child = data_source.get_child_profile(child_id)
    if child is not None and child.daily_spend_limit is not None:
        if lookup is None:
            lookup = get_todays_sales_for_child(child_id, institution_id, data_source=data_source)
        spent = todays_total_spend(lookup) if lookup.error is None else Decimal('0')
        if spent + safe_decimal(product.price) > safe_decimal(child.daily_spend_limit):
            return LimitDecision(False, MSG_DAILY_BUDGET_REACHED)

    return LimitDecision(True)


def get_child_product_limit_snapshot(
    child_id,
    institution_id=None,
    *,
    data_source: Optional[CafeDataSource] = None
) -> Dict[str, LimitSnapshotEntry]:
    """
    Limits and today's quantities for every product of the institution.

    One sales lookup, one club limit query and one parent limit query.
    Any failure degrades to an empty snapshot.
    """
    if not child_id:
        return {}

    data_source = data_source or get_data_source()

    try:
        if not institution_id:
            child = data_source.get_child_profile(child_id)
            institution_id = child.institution_id if child else None
        if not institution_id:
            return {}

        lookup = get_todays_sales_for_child(child_id, institution_id, data_source=data_source)
        if lookup.error is not None:
            logger.warning("limit_snapshot_sales_failed", child_id=str(child_id), error=lookup.error)
            return {}

        todays_qty: Dict[str, int] = {}
        for row in lookup.rows:
            for item in row.items:
                if item.product_id is not None:
                    todays_qty[item.product_id] = todays_qty.get(item.product_id, 0) + item.quantity

        products = data_source.list_products(institution_id)
        club_limits = data_source.list_institution_limits(institution_id)
        parent_limits = data_source.list_parent_limits(child_id)
    except DataSourceError as exc:
        logger.warning("limit_snapshot_failed", child_id=str(child_id), error=str(exc))
        return {}

    snapshot = {}
    for product in products:
        effective_max, limit_source = resolve_effective_limit(
            parent_limits.get(product.id),
            club_limits.get(product.id),
        )
        snapshot[product.id] = LimitSnapshotEntry(
            effective_max_per_day=effective_max,
            todays_qty=todays_qty.get(product.id, 0),
            limit_source=limit_source,
            refill_enabled=product.refill_enabled,
            refill_price=product.refill_price,
            refill_time_limit_minutes=product.refill_time_limit_minutes,
            refill_max_refills=product.refill_max_refills,
        )
    return snapshot
