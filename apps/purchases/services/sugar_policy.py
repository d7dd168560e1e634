"""
Sugar policy.

Limits on products flagged `unhealthy`, set by the institution and
optionally tightened per child by a parent. Counts already bought today
are combined with the cart before each decision.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional

import structlog

from .data_source import CafeDataSource, get_data_source
from .exceptions import DataSourceError
from .records import CustomerInfo, ProductInfo, SugarPolicy, UnhealthySnapshot


logger = structlog.get_logger(__name__)

MSG_UNHEALTHY_BLOCKED = '{name} is blocked: unhealthy items are not allowed for this child.'
MSG_UNHEALTHY_DAILY = 'The child may buy at most {limit} unhealthy items per day.'
MSG_UNHEALTHY_PER_PRODUCT = 'The child may buy at most {limit} of {name} per day.'


@dataclass(frozen=True)
class SugarViolation:
    product_id: str
    message: str


def get_effective_sugar_policy(
    customer: Optional[CustomerInfo],
    *,
    data_source: Optional[CafeDataSource] = None
) -> Optional[SugarPolicy]:
    """
    Merge the institution policy with the child's parent policy.

    Parent values win where they are set. Returns None when neither
    applies.
    """
    if customer is None:
        return None
    data_source = data_source or get_data_source()

    institution_policy = None
    if customer.institution_id:
        settings_ = data_source.get_institution_settings(customer.institution_id)
        if settings_ is not None and settings_.sugar_policy_enabled:
            institution_policy = SugarPolicy(
                block_unhealthy=False,
                max_unhealthy_per_day=(
                    settings_.sugar_policy_max_unhealthy_per_day
                    if settings_.sugar_policy_max_unhealthy_enabled else None
                ),
                max_unhealthy_per_product_per_day=(
                    settings_.sugar_policy_max_per_product_per_day
                    if settings_.sugar_policy_max_per_product_enabled else None
                ),
            )

    parent_policy = data_source.get_parent_sugar_policy(customer.id)

    if parent_policy is None:
        policy = institution_policy
    elif institution_policy is None:
        policy = parent_policy
    else:
        policy = SugarPolicy(
            block_unhealthy=parent_policy.block_unhealthy,
            max_unhealthy_per_day=(
                parent_policy.max_unhealthy_per_day
                if parent_policy.max_unhealthy_per_day is not None
                else institution_policy.max_unhealthy_per_day
            ),
            max_unhealthy_per_product_per_day=(
                parent_policy.max_unhealthy_per_product_per_day
                if parent_policy.max_unhealthy_per_product_per_day is not None
                else institution_policy.max_unhealthy_per_product_per_day
            ),
        )

    if policy is None or not policy.is_active:
        return None
    return policy


def get_unhealthy_purchases_snapshot(child_id, *, data_source: Optional[CafeDataSource] = None) -> UnhealthySnapshot:
    if not child_id:
        return UnhealthySnapshot()
    data_source = data_source or get_data_source()
    try:
        return data_source.check_sugar_policy(child_id)
    except DataSourceError as exc:
        logger.warning("sugar_policy_check_failed", child_id=str(child_id), error=str(exc))
        return UnhealthySnapshot()


def evaluate_sugar_policy(
    policy: Optional[SugarPolicy],
    snapshot: UnhealthySnapshot,
    order_lines: Iterable,
    products: Mapping[str, ProductInfo]
) -> Optional[SugarViolation]:
    """Return the first cart line that breaks the policy, or None."""
    if policy is None:
        return None

    total = snapshot.unhealthy_total
    per_product = dict(snapshot.unhealthy_per_product)

    for line in order_lines:
        product = products.get(str(line.product_id))
        if product is None or not product.unhealthy:
            continue
        if policy.block_unhealthy:
            return SugarViolation(product.id, MSG_UNHEALTHY_BLOCKED.format(name=product.name))

        total += 1
        per_product[product.id] = per_product.get(product.id, 0) + 1

        if policy.max_unhealthy_per_day is not None and total > policy.max_unhealthy_per_day:
            return SugarViolation(product.id, MSG_UNHEALTHY_DAILY.format(limit=policy.max_unhealthy_per_day))
        limit = policy.max_unhealthy_per_product_per_day
        if limit is not None and per_product[product.id] > limit:
            return SugarViolation(product.id, MSG_UNHEALTHY_PER_PRODUCT.format(limit=limit, name=product.name))

    return None


def sugar_locked_product_ids(
    policy: Optional[SugarPolicy],
    snapshot: UnhealthySnapshot,
    order_lines: Iterable,
    products: Mapping[str, ProductInfo]
) -> Dict[str, str]:
    """Unhealthy products that cannot take one more unit, mapped to the reason."""
    if policy is None:
        return {}

    in_cart: Dict[str, int] = {}
    for line in order_lines:
        product = products.get(str(line.product_id))
        if product is not None and product.unhealthy:
            in_cart[product.id] = in_cart.get(product.id, 0) + 1

    total = snapshot.unhealthy_total + sum(in_cart.values())
    locked = {}
    for product in products.values():
        if not product.unhealthy:
            continue
        if policy.block_unhealthy:
            locked[product.id] = MSG_UNHEALTHY_BLOCKED.format(name=product.name)
        elif policy.max_unhealthy_per_day is not None and total >= policy.max_unhealthy_per_day:
            locked[product.id] = MSG_UNHEALTHY_DAILY.format(limit=policy.max_unhealthy_per_day)
        elif policy.max_unhealthy_per_product_per_day is not None:
            bought = snapshot.unhealthy_per_product.get(product.id, 0) + in_cart.get(product.id, 0)
            if bought >= policy.max_unhealthy_per_product_per_day:
                locked[product.id] = MSG_UNHEALTHY_PER_PRODUCT.format(
                    limit=policy.max_unhealthy_per_product_per_day, name=product.name
                )
    return locked
