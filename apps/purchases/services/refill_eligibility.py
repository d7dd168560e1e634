"""
Refill eligibility.

A child who bought a refill-enabled product recently may buy it again at
the refill price. The window is the rest of the local day when the
product's time limit is 0, otherwise the last N minutes.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import structlog
from django.utils import timezone

from .data_source import CafeDataSource
from .local_day import local_day_range, start_of_local_day
from .records import ProductInfo
from .sales_cache import get_todays_sales_for_child


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RefillEligibility:
    eligible: bool
    purchase_count: int = 0
    refills_used: int = 0
    last_purchase_time: Optional[datetime] = None
    expires_at: Optional[datetime] = None


NOT_ELIGIBLE = RefillEligibility(eligible=False)


def refill_cutoff(product: ProductInfo, now: Optional[datetime] = None) -> datetime:
    now = now or timezone.now()
    minutes = product.refill_time_limit_minutes or 0
    if minutes <= 0:
        return start_of_local_day(now)
    return now - timedelta(minutes=minutes)


def refill_expires_at(product: ProductInfo, last_purchase_time: datetime) -> datetime:
    minutes = product.refill_time_limit_minutes or 0
    if minutes <= 0:
        return local_day_range(last_purchase_time)[1]
    return last_purchase_time + timedelta(minutes=minutes)


def get_refill_eligibility(
    child_id,
    product_id,
    product: Optional[ProductInfo],
    institution_id=None,
    *,
    now: Optional[datetime] = None,
    data_source: Optional[CafeDataSource] = None
) -> RefillEligibility:
    """
    Evaluate whether the next unit of a product is a refill.

    Args:
        child_id: Selected customer
        product_id: Product being added
        product: Product record (refill settings)
        institution_id: Café institution
        now: Evaluation time, defaults to timezone.now()

    Returns:
        RefillEligibility; `eligible` requires at least one purchase inside
        the window and, when refill_max_refills > 0, fewer refills than the cap
    """
    if not child_id or not product_id or product is None or not product.refill_enabled:
        return NOT_ELIGIBLE

    now = now or timezone.now()
    cutoff = refill_cutoff(product, now)

    lookup = get_todays_sales_for_child(child_id, institution_id, data_source=data_source)
    if lookup.error is not None:
        logger.warning("refill_sales_lookup_failed", child_id=str(child_id), error=lookup.error)
        return NOT_ELIGIBLE

    target = str(product_id)
    purchase_count = 0
    refills_used = 0
    last_purchase_time = None

    for row in lookup.rows:
        if row.created_at < cutoff:
            continue
        for item in row.items:
            if item.product_id != target:
                continue
            purchase_count += item.quantity
            if item.is_refill:
                refills_used += item.quantity
            if last_purchase_time is None or row.created_at > last_purchase_time:
                last_purchase_time = row.created_at

    max_refills = product.refill_max_refills or 0
    eligible = purchase_count > 0 and (max_refills == 0 or refills_used < max_refills)

    return RefillEligibility(
        eligible=eligible,
        purchase_count=purchase_count,
        refills_used=refills_used,
        last_purchase_time=last_purchase_time,
        expires_at=refill_expires_at(product, last_purchase_time) if last_purchase_time else None,
    )
