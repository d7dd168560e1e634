"""
Balance sync.

Keeps the in-memory customer directory in step with the ledger and
notifies listeners (café sessions) about every balance change. Realtime
deposit events may arrive before the customer is loaded; those get one
delayed retry and are then dropped.
"""

import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, Iterable, Optional

import structlog
from django.conf import settings

from .data_source import CafeDataSource, get_data_source
from .records import BalanceEventInfo, CustomerInfo, safe_decimal
from .sales_cache import invalidate_todays_sales_cache


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class BalanceChange:
    user_id: str
    new_balance: Decimal
    delta: Decimal
    source: str


class CustomerDirectory:
    """Customers known to this process, keyed by id."""

    def __init__(self):
        self._customers: Dict[str, CustomerInfo] = {}
        self._lock = threading.Lock()

    def get(self, user_id) -> Optional[CustomerInfo]:
        with self._lock:
            return self._customers.get(str(user_id))

    def put(self, customer: CustomerInfo) -> CustomerInfo:
        with self._lock:
            self._customers[customer.id] = customer
        return customer

    def load(self, customers: Iterable[CustomerInfo]):
        with self._lock:
            for customer in customers:
                self._customers.setdefault(customer.id, customer)

    def clear(self):
        with self._lock:
            self._customers.clear()

    def __contains__(self, user_id):
        return self.get(user_id) is not None

    def __len__(self):
        with self._lock:
            return len(self._customers)


class BalanceEventBus:
    def __init__(self, directory: Optional[CustomerDirectory] = None):
        self.directory = directory if directory is not None else CustomerDirectory()
        self._listeners: Dict[str, Callable[[BalanceChange], None]] = {}
        self._lock = threading.Lock()

    def on_balance_change(self, listener_id: str, callback: Callable[[BalanceChange], None]):
        with self._lock:
            self._listeners[listener_id] = callback

    def off_balance_change(self, listener_id: str):
        with self._lock:
            self._listeners.pop(listener_id, None)

    def update_customer_balance_globally(
        self,
        user_id,
        new_balance,
        delta=None,
        source: str = 'unknown'
    ) -> BalanceChange:
        """
        Mirror a ledger balance locally and broadcast the change.

        Listener failures are logged and do not reach the caller.
        """
        user_id = str(user_id)
        balance = safe_decimal(new_balance)
        customer = self.directory.get(user_id)
        if delta is None:
            delta = balance - customer.balance if customer is not None else Decimal('0')
        if customer is not None:
            customer.balance = balance

        change = BalanceChange(user_id=user_id, new_balance=balance, delta=safe_decimal(delta), source=source)
        logger.info("balance_changed", user_id=user_id, new_balance=str(balance), delta=str(change.delta), source=source)

        with self._lock:
            listeners = list(self._listeners.items())
        for listener_id, callback in listeners:
            try:
                callback(change)
            except Exception:
                logger.exception("balance_listener_failed", listener_id=listener_id, user_id=user_id)
        return change

    def refresh_customer_balance(self, user_id, *, data_source: Optional[CafeDataSource] = None) -> Decimal:
        """Re-read a balance from the ledger and mirror it."""
        data_source = data_source or get_data_source()
        balance = data_source.get_balance(str(user_id))
        self.update_customer_balance_globally(user_id, balance, source='refresh')
        return safe_decimal(balance)


def _timer_scheduler(delay: float, callback: Callable[[], None]):
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


class DepositEventProcessor:
    """
    Apply realtime deposit events to the directory.

    Args:
        bus: Balance bus to update
        retry_delay: Seconds before the single retry, defaults to
            FLANGO['DEPOSIT_RETRY_DELAY_SECONDS']
        scheduler: Callable(delay, callback) used to run the retry
    """

    IGNORED = 'ignored'
    APPLIED = 'applied'
    QUEUED = 'queued'
    DROPPED = 'dropped'

    def __init__(
        self,
        bus: BalanceEventBus,
        *,
        retry_delay: Optional[float] = None,
        scheduler: Optional[Callable] = None
    ):
        self.bus = bus
        if retry_delay is None:
            retry_delay = settings.FLANGO['DEPOSIT_RETRY_DELAY_SECONDS']
        self.retry_delay = retry_delay
        self._scheduler = scheduler or _timer_scheduler

    def process(self, event: BalanceEventInfo) -> str:
        if event.event_type != 'DEPOSIT' or safe_decimal(event.amount) <= 0:
            return self.IGNORED
        if event.user_id in self.bus.directory:
            self._apply(event)
            return self.APPLIED

        logger.info("deposit_event_queued", user_id=event.user_id, retry_delay=self.retry_delay)
        self._scheduler(self.retry_delay, lambda: self.retry(event))
        return self.QUEUED

    def retry(self, event: BalanceEventInfo) -> str:
        if event.user_id in self.bus.directory:
            self._apply(event)
            return self.APPLIED
        logger.warning("deposit_event_dropped", user_id=event.user_id, amount=str(event.amount))
        return self.DROPPED

    def _apply(self, event: BalanceEventInfo):
        invalidate_todays_sales_cache()
        self.bus.update_customer_balance_globally(
            event.user_id,
            event.new_balance,
            event.amount,
            source='deposit',
        )


_bus: Optional[BalanceEventBus] = None
_deposit_processor: Optional[DepositEventProcessor] = None


def get_balance_bus() -> BalanceEventBus:
    global _bus
    if _bus is None:
        _bus = BalanceEventBus()
    return _bus


def get_deposit_processor() -> DepositEventProcessor:
    global _deposit_processor
    if _deposit_processor is None:
        _deposit_processor = DepositEventProcessor(get_balance_bus())
    return _deposit_processor


def reset_balance_sync():
    """Forget the process-wide bus, directory and processor."""
    global _bus, _deposit_processor
    _bus = None
    _deposit_processor = None


def handle_balance_event(event: BalanceEventInfo):
    """
    Entry point for ledger events.

    Deposits go through the retrying processor. Direct balance edits are
    mirrored when the customer is loaded. Sales and undos are mirrored by
    the session that made them, so only the sales cache is dropped.
    """
    if event.event_type == 'DEPOSIT':
        get_deposit_processor().process(event)
        return

    invalidate_todays_sales_cache()
    bus = get_balance_bus()
    if event.event_type == 'BALANCE_ADJUSTMENT' and event.user_id in bus.directory:
        bus.update_customer_balance_globally(
            event.user_id,
            event.new_balance,
            event.amount,
            source=event.source or 'balance_edit',
        )
