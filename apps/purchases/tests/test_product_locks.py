"""
Tests for product locks and the refresh coordinator.

Tests cover:
- Lock reasons per product
- Stale pass results being discarded
- Coalescing refresh requests inside the debounce window
- Unlock-only passes reusing memoised inputs
"""

import pytest
from decimal import Decimal

from apps.purchases.services.order_management import OrderLine
from apps.purchases.services.product_locks import (
    REASON_DISABLED,
    REASON_ORDER_FULL,
    LockRefreshCoordinator,
    ProductLockState,
    compute_product_locks,
)
from apps.purchases.services.records import SugarPolicy
from apps.purchases.services.session import CafeSession


class ManualClock:
    def __init__(self):
        self.now = 0.0
        self.slept = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.slept.append(seconds)
        self.now += seconds


@pytest.fixture
def cafe(fake_source):
    fake_source.add_product(id='toast', name='Toast', price=Decimal('10.00'))
    fake_source.add_product(id='candy', name='Candy', price=Decimal('5.00'), unhealthy=True)
    fake_source.add_product(id='old', name='Old Bun', is_enabled=False)
    session = CafeSession('inst-1', data_source=fake_source, debounce_seconds=0)
    yield session
    session.close()


class TestComputeProductLocks:
    def test_no_customer_only_disabled_locked(self, cafe):
        states = compute_product_locks(cafe)

        assert states['old'] == ProductLockState(locked=True, reason=REASON_DISABLED)
        assert states['toast'].locked is False

    def test_limit_reached_locks_with_remaining_zero(self, cafe, fake_source):
        fake_source.club_limits['toast'] = 1
        cafe.set_current_customer(fake_source.add_child(id='c1'))
        cafe.order.append(OrderLine(product_id='toast', name='Toast', price=Decimal('10.00')))

        states = compute_product_locks(cafe)

        assert states['toast'].locked is True
        assert states['toast'].remaining == 0
        assert 'at most 1 of Toast' in states['toast'].reason

    def test_sugar_policy_locks_unhealthy(self, cafe, fake_source):
        fake_source.parent_sugar_policies['c1'] = SugarPolicy(block_unhealthy=True)
        cafe.set_current_customer(fake_source.add_child(id='c1'))

        states = compute_product_locks(cafe)

        assert states['candy'].locked is True
        assert 'unhealthy' in states['candy'].reason
        assert states['toast'].locked is False

    def test_full_order_locks_everything(self, cafe):
        cafe.order.extend([OrderLine(product_id='toast', name='Toast', price=Decimal('1'))] * 10)

        states = compute_product_locks(cafe)

        assert states['toast'].reason == REASON_ORDER_FULL
        assert states['candy'].reason == REASON_ORDER_FULL

    def test_unlock_only_reuses_snapshot(self, cafe, fake_source):
        fake_source.club_limits['toast'] = 5
        cafe.set_current_customer(fake_source.add_child(id='c1'))
        compute_product_locks(cafe)
        calls = fake_source.sales_calls
        snapshot = cafe.snapshots.peek()

        compute_product_locks(cafe, unlock_only=True)

        assert cafe.snapshots.peek() is snapshot
        assert fake_source.sales_calls == calls


class TestLockRefreshCoordinator:
    """Tests for LockRefreshCoordinator."""

    def test_older_pass_result_discarded(self):
        coordinator = LockRefreshCoordinator(lambda unlock_only: {}, debounce_seconds=0)
        first = coordinator.begin()
        second = coordinator.begin()

        assert coordinator.publish(second, {'a': ProductLockState(locked=True)}) is True
        assert coordinator.publish(first, {'a': ProductLockState(locked=False)}) is False
        assert coordinator.current()['a'].locked is True
        assert coordinator.applied_generation == second

    def test_requests_coalesce_into_one_pass(self):
        clock = ManualClock()
        passes = []
        coordinator = LockRefreshCoordinator(
            lambda unlock_only: passes.append(unlock_only) or {},
            debounce_seconds=0.05,
            clock=clock,
            sleep=clock.sleep,
        )

        for _ in range(5):
            coordinator.request_refresh()
            clock.now += 0.01
        coordinator.current()

        assert passes == [False]
        assert clock.slept == [pytest.approx(0.04)]
        assert coordinator.has_pending is False

    def test_no_wait_after_window_passed(self):
        clock = ManualClock()
        coordinator = LockRefreshCoordinator(lambda unlock_only: {}, debounce_seconds=0.05, clock=clock, sleep=clock.sleep)

        coordinator.request_refresh()
        clock.now += 1
        coordinator.current()

        assert clock.slept == []

    def test_unlock_only_only_when_every_request_asked(self):
        passes = []
        coordinator = LockRefreshCoordinator(lambda unlock_only: passes.append(unlock_only) or {}, debounce_seconds=0)

        coordinator.request_refresh(unlock_only=True)
        coordinator.current()
        coordinator.request_refresh(unlock_only=True)
        coordinator.request_refresh(unlock_only=False)
        coordinator.current()

        assert passes == [True, False]

    def test_current_without_requests_reuses_result(self):
        passes = []
        coordinator = LockRefreshCoordinator(lambda unlock_only: passes.append(unlock_only) or {}, debounce_seconds=0)

        coordinator.current()
        coordinator.current()

        assert passes == [False]
