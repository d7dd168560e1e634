"""
Tests for balance sync.

Tests cover:
- Broadcasting balance changes to listeners
- Deposit events for loaded and not-yet-loaded customers
- Ledger events forwarded through the signal after commit
"""

import pytest
from decimal import Decimal

from apps.purchases.services import balance_sync, ledger
from apps.purchases.services.balance_sync import (
    BalanceEventBus,
    DepositEventProcessor,
    get_balance_bus,
    handle_balance_event,
)
from apps.purchases.services.records import BalanceEventInfo, CustomerInfo


class CapturingScheduler:
    def __init__(self):
        self.scheduled = []

    def __call__(self, delay, callback):
        self.scheduled.append((delay, callback))

    def run_all(self):
        for _, callback in self.scheduled:
            callback()


def customer(user_id='c1', balance='50.00'):
    return CustomerInfo(id=user_id, name='Emma', institution_id='inst-1', balance=Decimal(balance))


def deposit_event(user_id='c1', amount='100.00', new_balance='150.00'):
    return BalanceEventInfo(
        event_type='DEPOSIT',
        user_id=user_id,
        institution_id='inst-1',
        amount=Decimal(amount),
        new_balance=Decimal(new_balance),
        source='deposit',
    )


class TestBalanceEventBus:
    """Tests for BalanceEventBus."""

    def test_update_mirrors_and_broadcasts(self):
        bus = BalanceEventBus()
        bus.directory.put(customer())
        seen = []
        bus.on_balance_change('a', seen.append)

        change = bus.update_customer_balance_globally('c1', Decimal('30.00'), source='purchase')

        assert bus.directory.get('c1').balance == Decimal('30.00')
        assert change.delta == Decimal('-20.00')
        assert seen == [change]

    def test_failing_listener_does_not_stop_others(self):
        bus = BalanceEventBus()
        seen = []

        def broken(change):
            raise RuntimeError('listener exploded')

        bus.on_balance_change('broken', broken)
        bus.on_balance_change('ok', seen.append)

        bus.update_customer_balance_globally('c1', Decimal('10'))

        assert len(seen) == 1

    def test_off_balance_change(self):
        bus = BalanceEventBus()
        seen = []
        bus.on_balance_change('a', seen.append)
        bus.off_balance_change('a')

        bus.update_customer_balance_globally('c1', Decimal('10'))

        assert seen == []

    def test_refresh_reads_ledger(self, fake_source):
        fake_source.add_child(id='c1', balance=Decimal('75.00'))
        bus = BalanceEventBus()
        bus.directory.put(customer())

        assert bus.refresh_customer_balance('c1', data_source=fake_source) == Decimal('75.00')
        assert bus.directory.get('c1').balance == Decimal('75.00')


class TestDepositEventProcessor:
    """Tests for DepositEventProcessor."""

    def test_known_customer_applied(self):
        bus = BalanceEventBus()
        bus.directory.put(customer())
        processor = DepositEventProcessor(bus, retry_delay=2.0, scheduler=CapturingScheduler())

        assert processor.process(deposit_event()) == DepositEventProcessor.APPLIED
        assert bus.directory.get('c1').balance == Decimal('150.00')

    def test_non_deposit_ignored(self):
        processor = DepositEventProcessor(BalanceEventBus(), scheduler=CapturingScheduler())
        event = BalanceEventInfo('SALE', 'c1', 'inst-1', Decimal('-20'), Decimal('30'))

        assert processor.process(event) == DepositEventProcessor.IGNORED

    def test_unknown_customer_retried_once(self):
        bus = BalanceEventBus()
        scheduler = CapturingScheduler()
        processor = DepositEventProcessor(bus, retry_delay=2.0, scheduler=scheduler)

        assert processor.process(deposit_event()) == DepositEventProcessor.QUEUED
        assert scheduler.scheduled[0][0] == 2.0

        bus.directory.put(customer())
        scheduler.run_all()

        assert bus.directory.get('c1').balance == Decimal('150.00')

    def test_still_unknown_after_retry_dropped(self):
        bus = BalanceEventBus()
        processor = DepositEventProcessor(bus, scheduler=CapturingScheduler())

        assert processor.retry(deposit_event()) == DepositEventProcessor.DROPPED
        assert 'c1' not in bus.directory


class TestHandleBalanceEvent:
    def test_adjustment_mirrored_for_known_customer(self):
        bus = get_balance_bus()
        bus.directory.put(customer())
        event = BalanceEventInfo('BALANCE_ADJUSTMENT', 'c1', 'inst-1', Decimal('5'), Decimal('55.00'))

        handle_balance_event(event)

        assert bus.directory.get('c1').balance == Decimal('55.00')

    def test_adjustment_for_unknown_customer_ignored(self):
        event = BalanceEventInfo('BALANCE_ADJUSTMENT', 'zz', 'inst-1', Decimal('5'), Decimal('55.00'))

        handle_balance_event(event)

        assert 'zz' not in get_balance_bus().directory


@pytest.mark.django_db
class TestLedgerSignals:
    """Ledger writes reach the balance sync after commit."""

    def test_deposit_updates_loaded_customer(self, child, django_capture_on_commit_callbacks):
        bus = get_balance_bus()
        bus.directory.put(CustomerInfo.from_model(child))

        with django_capture_on_commit_callbacks(execute=True):
            new_balance = ledger.deposit(user_id=child.id, amount='25.00')

        assert new_balance == Decimal('75.00')
        assert bus.directory.get(str(child.id)).balance == Decimal('75.00')

    def test_balance_edit_updates_loaded_customer(self, child, admin_user, django_capture_on_commit_callbacks):
        bus = get_balance_bus()
        bus.directory.put(CustomerInfo.from_model(child))

        with django_capture_on_commit_callbacks(execute=True):
            ledger.edit_balance(user_id=child.id, new_balance='12.50', performed_by_id=admin_user.id)

        assert bus.directory.get(str(child.id)).balance == Decimal('12.50')

    def test_unknown_customer_deposit_queued(self, child, django_capture_on_commit_callbacks):
        scheduler = CapturingScheduler()
        balance_sync._deposit_processor = DepositEventProcessor(get_balance_bus(), scheduler=scheduler)

        with django_capture_on_commit_callbacks(execute=True):
            ledger.deposit(user_id=child.id, amount='25.00')

        assert len(scheduler.scheduled) == 1
