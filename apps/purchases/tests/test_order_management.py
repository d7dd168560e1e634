"""
Tests for order management.

Tests cover:
- Item ceiling
- Per-product limits from the snapshot and the resolver
- Refill substitution
- Removing lines
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import patch
from django.utils import timezone

from apps.purchases.services.limit_resolver import LimitSnapshotEntry, MSG_PARENT_BLOCKED
from apps.purchases.services.order_management import (
    REASON_LIMIT,
    REASON_PRODUCT_LIMIT,
    ChildLimitSnapshotStore,
    OrderLine,
    add_product_to_order,
    calculate_order_total,
    remove_product_from_order,
)
from apps.purchases.services.session import CafeSession


@pytest.fixture
def cafe(fake_source):
    session = CafeSession('inst-1', data_source=fake_source, debounce_seconds=0)
    yield session
    session.close()


@pytest.fixture
def toast(fake_source):
    return fake_source.add_product(id='toast', name='Toast', price=Decimal('10.00'))


@pytest.fixture
def emma(fake_source):
    return fake_source.add_child(id='c1', name='Emma')


class TestItemCeiling:
    """The cart holds at most max_items units."""

    def test_eleventh_item_rejected(self, toast):
        order = []
        for _ in range(10):
            assert add_product_to_order(order, toast, 10).success is True

        result = add_product_to_order(order, toast, 10)

        assert result.success is False
        assert result.reason == REASON_LIMIT
        assert len(order) == 10

    def test_ceiling_defaults_to_setting(self, toast):
        order = [OrderLine.from_product(toast)] * 10

        result = add_product_to_order(order, toast)

        assert result.reason == REASON_LIMIT

    def test_without_customer_only_ceiling_applies(self, cafe, toast, fake_source):
        fake_source.club_limits['toast'] = 1
        order = []

        add_product_to_order(order, toast, session=cafe)
        result = add_product_to_order(order, toast, session=cafe)

        assert result.success is True
        assert fake_source.sales_calls == 0


class TestProductLimits:
    def test_club_cap_counts_cart(self, cafe, toast, emma, fake_source):
        fake_source.club_limits['toast'] = 2
        cafe.set_current_customer(emma)

        assert add_product_to_order(cafe.order, toast, session=cafe).success is True
        assert add_product_to_order(cafe.order, toast, session=cafe).success is True
        result = add_product_to_order(cafe.order, toast, session=cafe)

        assert result.success is False
        assert result.reason == REASON_PRODUCT_LIMIT
        assert 'at most 2 of Toast' in result.message
        assert len(cafe.order) == 2

    def test_parent_block_from_snapshot(self, cafe, toast, emma, fake_source):
        fake_source.parent_limits[('c1', 'toast')] = 0
        cafe.set_current_customer(emma)

        result = add_product_to_order(cafe.order, toast, session=cafe)

        assert result.success is False
        assert result.message == MSG_PARENT_BLOCKED

    def test_disabled_product_rejected(self, cafe, emma, fake_source):
        disabled = fake_source.add_product(id='old', name='Old Bun', is_enabled=False)
        cafe.set_current_customer(emma)

        result = add_product_to_order(cafe.order, disabled, session=cafe)

        assert result.success is False
        assert result.reason == REASON_PRODUCT_LIMIT

    def test_adding_clears_last_evaluation(self, cafe, toast, emma):
        cafe.set_current_customer(emma)
        cafe.last_evaluation = object()

        add_product_to_order(cafe.order, toast, session=cafe)

        assert cafe.last_evaluation is None


class TestRefillSubstitution:
    """Eligible children get the refill price for the next unit."""

    @pytest.fixture
    def saft(self, fake_source):
        return fake_source.add_product(
            id='saft',
            name='Saft',
            price=Decimal('8.00'),
            refill_enabled=True,
            refill_price=Decimal('2.00'),
            refill_time_limit_minutes=30,
            refill_max_refills=1,
        )

    @pytest.fixture
    def noon(self):
        moment = timezone.make_aware(datetime(2025, 5, 14, 12, 0), timezone.get_current_timezone())
        with patch('django.utils.timezone.now', return_value=moment):
            yield moment

    def test_eligible_child_gets_refill_line(self, cafe, saft, emma, fake_source, noon):
        fake_source.add_sale(
            'c1',
            [{'product_id': 'saft', 'quantity': 1, 'price': Decimal('8.00')}],
            created_at=noon - timedelta(minutes=10),
        )
        cafe.set_current_customer(emma)

        result = add_product_to_order(cafe.order, saft, session=cafe)

        assert result.success is True
        assert result.line.is_refill is True
        assert result.line.unit_price == Decimal('2.00')
        assert result.line.display_name == 'Saft Refill'
        assert result.line.name == 'Saft'

    def test_refill_cap_counts_cart_refills(self, cafe, saft, emma, fake_source, noon):
        fake_source.add_sale(
            'c1',
            [{'product_id': 'saft', 'quantity': 1, 'price': Decimal('8.00')}],
            created_at=noon - timedelta(minutes=10),
        )
        cafe.set_current_customer(emma)

        first = add_product_to_order(cafe.order, saft, session=cafe)
        second = add_product_to_order(cafe.order, saft, session=cafe)

        assert first.line.is_refill is True
        assert second.line.is_refill is False
        assert calculate_order_total(cafe.order) == Decimal('10.00')

    def test_free_refill_when_no_refill_price(self, cafe, emma, fake_source, noon):
        water = fake_source.add_product(
            id='water', name='Water', price=Decimal('3.00'),
            refill_enabled=True, refill_price=None, refill_time_limit_minutes=0,
        )
        fake_source.add_sale(
            'c1',
            [{'product_id': 'water', 'quantity': 1, 'price': Decimal('3.00')}],
            created_at=noon - timedelta(hours=2),
        )
        cafe.set_current_customer(emma)

        result = add_product_to_order(cafe.order, water, session=cafe)

        assert result.line.unit_price == Decimal('0')


class TestRemoveProductFromOrder:
    def test_remove_last_by_default(self, toast, fake_source):
        juice = fake_source.add_product(id='juice', name='Juice')
        order = [OrderLine.from_product(toast), OrderLine.from_product(juice)]

        removed = remove_product_from_order(order)

        assert removed.product_id == 'juice'
        assert [line.product_id for line in order] == ['toast']

    def test_remove_by_index(self, toast, fake_source):
        juice = fake_source.add_product(id='juice', name='Juice')
        order = [OrderLine.from_product(toast), OrderLine.from_product(juice)]

        removed = remove_product_from_order(order, 0)

        assert removed.product_id == 'toast'

    def test_empty_order_returns_none(self):
        assert remove_product_from_order([]) is None

    def test_index_out_of_range_returns_none(self, toast):
        order = [OrderLine.from_product(toast)]

        assert remove_product_from_order(order, 3) is None
        assert len(order) == 1

    def test_removal_requests_unlock_only_refresh(self, cafe, toast):
        cafe.order.append(OrderLine.from_product(toast))
        cafe.locks.reset()

        remove_product_from_order(cafe.order, session=cafe)

        assert cafe.locks.has_pending is True


class TestChildLimitSnapshotStore:
    def test_memoised_per_child(self):
        calls = []

        def loader(child_id, institution_id, data_source=None):
            calls.append(child_id)
            return {'p1': LimitSnapshotEntry(effective_max_per_day=1, todays_qty=0)}

        store = ChildLimitSnapshotStore(loader)
        store.get('c1')
        store.get('c1')
        store.get('c2')

        assert calls == ['c1', 'c2']
        assert store.child_id == 'c2'

    def test_invalidate_forces_reload(self):
        calls = []
        store = ChildLimitSnapshotStore(lambda child_id, institution_id, data_source=None: calls.append(1) or {})

        store.get('c1')
        store.invalidate()
        store.get('c1')

        assert len(calls) == 2
