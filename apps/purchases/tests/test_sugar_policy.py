"""
Tests for the sugar policy.
"""

import pytest
from decimal import Decimal

from apps.catalog.models import ParentSugarPolicy
from apps.purchases.services.data_source import OrmCafeDataSource
from apps.purchases.services.order_management import OrderLine
from apps.purchases.services.records import (
    CustomerInfo,
    InstitutionSettings,
    ProductInfo,
    SugarPolicy,
    UnhealthySnapshot,
)
from apps.purchases.services.sugar_policy import (
    evaluate_sugar_policy,
    get_effective_sugar_policy,
    get_unhealthy_purchases_snapshot,
    sugar_locked_product_ids,
)


@pytest.fixture
def products():
    return {
        'candy': ProductInfo(id='candy', institution_id='inst-1', name='Candy', price=Decimal('5'), unhealthy=True),
        'cake': ProductInfo(id='cake', institution_id='inst-1', name='Cake', price=Decimal('8'), unhealthy=True),
        'apple': ProductInfo(id='apple', institution_id='inst-1', name='Apple', price=Decimal('3')),
    }


def lines(*product_ids):
    return [OrderLine(product_id=pid, name=pid, price=Decimal('1')) for pid in product_ids]


class TestGetEffectiveSugarPolicy:
    def test_no_policy(self, fake_source):
        customer = fake_source.add_child(id='c1')

        assert get_effective_sugar_policy(customer, data_source=fake_source) is None

    def test_institution_policy(self, fake_source):
        fake_source.institutions['inst-1'] = InstitutionSettings(
            id='inst-1',
            sugar_policy_enabled=True,
            sugar_policy_max_unhealthy_enabled=True,
            sugar_policy_max_unhealthy_per_day=2,
        )
        customer = fake_source.add_child(id='c1')

        policy = get_effective_sugar_policy(customer, data_source=fake_source)

        assert policy == SugarPolicy(max_unhealthy_per_day=2, max_unhealthy_per_product_per_day=1)

    def test_parent_values_win(self, fake_source):
        fake_source.institutions['inst-1'] = InstitutionSettings(
            id='inst-1',
            sugar_policy_enabled=True,
            sugar_policy_max_unhealthy_enabled=True,
            sugar_policy_max_unhealthy_per_day=3,
        )
        fake_source.parent_sugar_policies['c1'] = SugarPolicy(max_unhealthy_per_day=1)
        customer = fake_source.add_child(id='c1')

        policy = get_effective_sugar_policy(customer, data_source=fake_source)

        assert policy.max_unhealthy_per_day == 1
        assert policy.max_unhealthy_per_product_per_day == 1


class TestEvaluateSugarPolicy:
    def test_block_unhealthy(self, products):
        violation = evaluate_sugar_policy(
            SugarPolicy(block_unhealthy=True), UnhealthySnapshot(), lines('apple', 'candy'), products
        )

        assert violation.product_id == 'candy'

    def test_daily_total_counts_todays_purchases(self, products):
        snapshot = UnhealthySnapshot(unhealthy_total=1, unhealthy_per_product={'cake': 1})

        violation = evaluate_sugar_policy(
            SugarPolicy(max_unhealthy_per_day=2), snapshot, lines('candy', 'candy'), products
        )

        assert violation.message == 'The child may buy at most 2 unhealthy items per day.'

    def test_per_product_limit(self, products):
        violation = evaluate_sugar_policy(
            SugarPolicy(max_unhealthy_per_product_per_day=1), UnhealthySnapshot(), lines('candy', 'cake', 'candy'), products
        )

        assert violation.message == 'The child may buy at most 1 of Candy per day.'

    def test_within_policy(self, products):
        assert evaluate_sugar_policy(
            SugarPolicy(max_unhealthy_per_day=2), UnhealthySnapshot(), lines('candy', 'apple', 'apple'), products
        ) is None


class TestSugarLockedProducts:
    def test_locks_bought_product_only(self, products):
        snapshot = UnhealthySnapshot(unhealthy_total=1, unhealthy_per_product={'candy': 1})

        locked = sugar_locked_product_ids(SugarPolicy(max_unhealthy_per_product_per_day=1), snapshot, [], products)

        assert set(locked) == {'candy'}

    def test_daily_total_locks_all_unhealthy(self, products):
        locked = sugar_locked_product_ids(
            SugarPolicy(max_unhealthy_per_day=1), UnhealthySnapshot(), lines('cake'), products
        )

        assert set(locked) == {'candy', 'cake'}


@pytest.mark.django_db
class TestOrmSugarPolicy:
    def test_unhealthy_counts_from_todays_sales(self, child, candy, juice, make_sale):
        make_sale(child, candy, quantity=2)
        make_sale(child, juice)

        snapshot = get_unhealthy_purchases_snapshot(str(child.id), data_source=OrmCafeDataSource())

        assert snapshot.unhealthy_total == 2
        assert snapshot.bought_unhealthy_product_ids == [str(candy.id)]

    def test_parent_policy_row(self, child):
        ParentSugarPolicy.objects.create(child=child, block_unhealthy=True)

        policy = get_effective_sugar_policy(CustomerInfo.from_model(child), data_source=OrmCafeDataSource())

        assert policy.block_unhealthy is True
