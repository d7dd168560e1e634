"""
Café session context.

One CafeSession per operator holds the selected customer, the cart, the
memoised limit snapshot and the last evaluation. Sessions live in process
memory and are passed explicitly to the services that need them.
"""

import threading
from typing import Dict, List, Optional

import structlog

from .balance_sync import BalanceChange, BalanceEventBus, get_balance_bus
from .data_source import CafeDataSource, get_data_source
from .exceptions import CustomerNotFoundError, DataSourceError
from .order_management import ChildLimitSnapshotStore, OrderLine
from .product_locks import LockRefreshCoordinator, compute_product_locks
from .records import CustomerInfo


logger = structlog.get_logger(__name__)


class CafeSession:
    def __init__(
        self,
        institution_id,
        operator=None,
        *,
        data_source: Optional[CafeDataSource] = None,
        bus: Optional[BalanceEventBus] = None,
        debounce_seconds: Optional[float] = None
    ):
        self.institution_id = str(institution_id) if institution_id else None
        self.operator = operator
        self.data_source = data_source or get_data_source()
        self.bus = bus or get_balance_bus()

        self.order: List[OrderLine] = []
        self.snapshots = ChildLimitSnapshotStore()
        self.last_evaluation = None
        self.commit_in_progress = False
        self.sugar_inputs = None
        self.mutex = threading.RLock()

        self._current_customer: Optional[CustomerInfo] = None
        self.locks = LockRefreshCoordinator(
            lambda unlock_only: compute_product_locks(self, unlock_only=unlock_only),
            debounce_seconds=debounce_seconds,
        )

        self.listener_id = f'session:{id(self)}'
        self.bus.on_balance_change(self.listener_id, self._on_balance_change)

    @property
    def customers(self):
        return self.bus.directory

    def get_current_customer(self) -> Optional[CustomerInfo]:
        return self._current_customer

    def get_current_session_admin(self):
        return self.operator

    def set_current_customer(self, customer: Optional[CustomerInfo]):
        """Select a customer. Drops the snapshot and any stale evaluation."""
        if customer is not None:
            self.customers.put(customer)
        self._current_customer = customer
        self.snapshots.invalidate()
        self.sugar_inputs = None
        self.last_evaluation = None
        self.locks.request_refresh()

    def select_customer(self, customer_id) -> CustomerInfo:
        """
        Load a customer from the data source and select it.

        Raises:
            CustomerNotFoundError: If missing or outside this institution
        """
        customer = self.data_source.get_child_profile(str(customer_id))
        if customer is None or customer.institution_id != self.institution_id:
            raise CustomerNotFoundError(f"Customer with ID {customer_id} not found")
        self.set_current_customer(customer)
        return self._current_customer

    def clear_current_customer(self):
        self.set_current_customer(None)

    def on_order_changed(self, unlock_only: bool = False):
        self.last_evaluation = None
        self.locks.request_refresh(unlock_only=unlock_only)

    def invalidate_caches(self):
        self.snapshots.invalidate()
        self.sugar_inputs = None
        self.last_evaluation = None

    def load_customers(self):
        """Fill the shared customer directory for this institution."""
        try:
            self.customers.load(self.data_source.list_customers(self.institution_id))
        except DataSourceError as exc:
            logger.warning("customer_directory_load_failed", institution_id=self.institution_id, error=str(exc))

    def close(self):
        self.bus.off_balance_change(self.listener_id)

    def _on_balance_change(self, change: BalanceChange):
        customer = self._current_customer
        if customer is None or customer.id != change.user_id:
            return
        customer.balance = change.new_balance
        self.invalidate_caches()
        self.locks.request_refresh()


_sessions: Dict[str, CafeSession] = {}
_sessions_lock = threading.Lock()


def get_cafe_session(operator, *, data_source: Optional[CafeDataSource] = None) -> CafeSession:
    """Return the operator's session, creating it on first use."""
    key = str(operator.pk)
    institution_id = str(operator.institution_id) if operator.institution_id else None
    with _sessions_lock:
        session = _sessions.get(key)
        if session is not None and session.institution_id != institution_id:
            session.close()
            session = None
        if session is None:
            session = CafeSession(institution_id, operator, data_source=data_source)
            session.load_customers()
            _sessions[key] = session
            logger.info("cafe_session_started", operator_id=key, institution_id=institution_id)
        return session


def end_cafe_session(operator):
    with _sessions_lock:
        session = _sessions.pop(str(operator.pk), None)
    if session is not None:
        session.close()


def reset_cafe_sessions():
    with _sessions_lock:
        sessions = list(_sessions.values())
        _sessions.clear()
    for session in sessions:
        session.close()
