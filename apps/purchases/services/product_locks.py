"""
Product lock pass.

Computes, for every product of the institution, whether the selected
child can take one more unit, combining the limit snapshot, the cart and
the sugar policy. `LockRefreshCoordinator` coalesces refresh requests and
discards results from passes that a newer pass has overtaken.
"""

import threading
import time
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, Optional

import structlog
from django.conf import settings

from .exceptions import DataSourceError
from .limit_resolver import limit_reached_message
from .order_management import count_in_order
from .refill_eligibility import get_refill_eligibility
from .sugar_policy import (
    get_effective_sugar_policy,
    get_unhealthy_purchases_snapshot,
    sugar_locked_product_ids,
)


logger = structlog.get_logger(__name__)

REASON_DISABLED = 'The product is not available right now.'
REASON_ORDER_FULL = 'The order is full.'


@dataclass(frozen=True)
class ProductLockState:
    locked: bool
    reason: Optional[str] = None
    remaining: Optional[int] = None
    refill_eligible: bool = False
    refill_price: Optional[Decimal] = None
    refill_expires_at: Optional[datetime] = None


def compute_product_locks(session, *, unlock_only: bool = False) -> Dict[str, ProductLockState]:
    """
    Lock state for every product of the session's institution.

    A full pass refetches the limit snapshot and sugar counts. An
    unlock-only pass reuses them, since removing a cart line can only
    loosen limits.
    """
    data_source = session.data_source
    try:
        products = {p.id: p for p in data_source.list_products(session.institution_id)}
    except DataSourceError as exc:
        logger.warning("product_locks_failed", institution_id=session.institution_id, error=str(exc))
        return {}

    order = session.order
    customer = session.get_current_customer()
    order_full = len(order) >= settings.FLANGO['MAX_ITEMS_PER_ORDER']

    snapshot = {}
    sugar_locks = {}
    if customer is not None:
        if not unlock_only or session.snapshots.peek() is None:
            session.snapshots.invalidate()
        snapshot = session.snapshots.get(customer.id, customer.institution_id, data_source=data_source)

        if not unlock_only or session.sugar_inputs is None:
            try:
                policy = get_effective_sugar_policy(customer, data_source=data_source)
            except DataSourceError as exc:
                logger.warning("sugar_policy_lookup_failed", child_id=customer.id, error=str(exc))
                policy = None
            unhealthy = get_unhealthy_purchases_snapshot(customer.id, data_source=data_source) if policy else None
            session.sugar_inputs = (policy, unhealthy)
        policy, unhealthy = session.sugar_inputs
        if policy is not None:
            sugar_locks = sugar_locked_product_ids(policy, unhealthy, order, products)

    states = {}
    for product_id, product in products.items():
        remaining = None
        reason = None

        if not product.is_enabled:
            reason = REASON_DISABLED
        else:
            entry = snapshot.get(product_id)
            if entry is not None and entry.effective_max_per_day is not None:
                remaining = max(0, entry.effective_max_per_day - entry.todays_qty - count_in_order(order, product_id))
                if remaining == 0:
                    reason = limit_reached_message(entry.effective_max_per_day, entry.limit_source, product.name)
            if reason is None and product_id in sugar_locks:
                reason = sugar_locks[product_id]
            if reason is None and order_full:
                reason = REASON_ORDER_FULL

        refill = None
        if customer is not None and product.refill_enabled and reason is None:
            refill = get_refill_eligibility(
                customer.id, product_id, product, customer.institution_id, data_source=data_source
            )

        states[product_id] = ProductLockState(
            locked=reason is not None,
            reason=reason,
            remaining=remaining,
            refill_eligible=bool(refill and refill.eligible),
            refill_price=product.refill_price if refill and refill.eligible else None,
            refill_expires_at=refill.expires_at if refill and refill.eligible else None,
        )
    return states


class LockRefreshCoordinator:
    """
    Coalesce lock refresh requests and keep only the newest result.

    Requests are recorded by `request_refresh`; the pass runs when the
    result is read with `current()`, after the debounce window since the
    last request has passed. The pass is full unless every coalesced
    request asked for unlock-only.

    Args:
        compute: Callable(unlock_only) returning the lock states
        debounce_seconds: Coalescing window, defaults to
            FLANGO['LOCK_REFRESH_DEBOUNCE_SECONDS']
        clock: Monotonic seconds source
        sleep: Used to wait out the debounce window
    """

    def __init__(
        self,
        compute: Callable[[bool], Dict[str, ProductLockState]],
        *,
        debounce_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep
    ):
        self._compute = compute
        if debounce_seconds is None:
            debounce_seconds = settings.FLANGO['LOCK_REFRESH_DEBOUNCE_SECONDS']
        self.debounce_seconds = debounce_seconds
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._generation = 0
        self._applied_generation = 0
        self._latest: Optional[Dict[str, ProductLockState]] = None
        self._pending = False
        self._pending_unlock_only = True
        self._last_request_at: Optional[float] = None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def applied_generation(self) -> int:
        return self._applied_generation

    @property
    def has_pending(self) -> bool:
        return self._pending

    def request_refresh(self, unlock_only: bool = False):
        with self._lock:
            self._pending_unlock_only = unlock_only if not self._pending else (self._pending_unlock_only and unlock_only)
            self._pending = True
            self._last_request_at = self._clock()

    def begin(self) -> int:
        with self._lock:
            self._generation += 1
            return self._generation

    def publish(self, generation: int, result: Dict[str, ProductLockState]) -> bool:
        """Store a pass result unless a newer pass has started since."""
        with self._lock:
            if generation < self._generation:
                logger.debug("lock_pass_discarded", generation=generation, latest=self._generation)
                return False
            self._latest = result
            self._applied_generation = generation
            return True

    def run(self, unlock_only: bool = False) -> Optional[Dict[str, ProductLockState]]:
        generation = self.begin()
        result = self._compute(unlock_only)
        return result if self.publish(generation, result) else None

    def current(self) -> Dict[str, ProductLockState]:
        """Latest lock states, running a pass first when one is due."""
        with self._lock:
            pending = self._pending
            wait = 0.0
            if pending and self._last_request_at is not None:
                wait = self.debounce_seconds - (self._clock() - self._last_request_at)
        if pending and wait > 0:
            self._sleep(wait)

        if pending or self._latest is None:
            with self._lock:
                unlock_only = self._pending_unlock_only if self._pending else False
                self._pending = False
                self._pending_unlock_only = True
            self.run(unlock_only=unlock_only)
        return self._latest or {}

    def reset(self):
        with self._lock:
            self._latest = None
            self._pending = False
            self._pending_unlock_only = True
