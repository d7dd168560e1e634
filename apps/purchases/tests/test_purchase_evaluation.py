"""
Tests for purchase evaluation.

Tests cover:
- Totals and the resulting balance
- The overdraft floor, including landing exactly on it
- Grouped item summary
- Defensive coercion of malformed prices
"""

from decimal import Decimal

from apps.purchases.services.order_management import OrderLine
from apps.purchases.services.purchase_evaluation import evaluate_purchase
from apps.purchases.services.records import CustomerInfo, ProductInfo


CUSTOMER = CustomerInfo(id='c1', name='Emma', institution_id='inst-1', balance=Decimal('50'))


class TestEvaluatePurchase:
    """Tests for evaluate_purchase()."""

    def test_within_overdraft(self):
        """Balance 50, juice 20 + toast 40, floor -10: lands exactly on the floor."""
        result = evaluate_purchase(
            customer=CUSTOMER,
            current_balance=Decimal('50'),
            order_items=[
                {'product_id': 'juice', 'name': 'Juice', 'price': Decimal('20')},
                {'product_id': 'toast', 'name': 'Toast', 'price': Decimal('40')},
            ],
            max_overdraft=Decimal('-10'),
        )

        assert result.ok is True
        assert result.total == Decimal('60')
        assert result.new_balance == Decimal('-10')
        assert result.messages.overdraft_breached is False

    def test_overdraft_breached(self):
        result = evaluate_purchase(
            customer=CUSTOMER,
            current_balance=Decimal('50'),
            order_items=[
                {'product_id': 'juice', 'name': 'Juice', 'price': Decimal('20')},
                {'product_id': 'toast', 'name': 'Toast', 'price': Decimal('50')},
            ],
            max_overdraft=Decimal('-10'),
        )

        assert result.ok is False
        assert result.new_balance == Decimal('-20')
        assert result.messages.overdraft_breached is True
        assert result.messages.available_until_limit == Decimal('60')

    def test_no_customer(self):
        result = evaluate_purchase(
            customer=None,
            current_balance=Decimal('50'),
            order_items=[{'product_id': 'juice', 'price': Decimal('20')}],
        )

        assert result.ok is False
        assert result.messages.has_customer is False

    def test_empty_cart(self):
        result = evaluate_purchase(customer=CUSTOMER, current_balance=Decimal('50'), order_items=[])

        assert result.ok is False
        assert result.total == Decimal('0')
        assert result.messages.has_items is False

    def test_items_grouped_by_product(self):
        juice = OrderLine(product_id='juice', name='Juice', price=Decimal('20'))
        toast = OrderLine(product_id='toast', name='Toast', price=Decimal('40'))

        result = evaluate_purchase(
            customer=CUSTOMER,
            current_balance=Decimal('200'),
            order_items=[juice, toast, juice],
        )

        assert [(s.product_id, s.quantity, s.amount) for s in result.items_summary] == [
            ('juice', 2, Decimal('40')),
            ('toast', 1, Decimal('40')),
        ]

    def test_effective_price_used(self):
        refill = OrderLine(product_id='saft', name='Saft', price=Decimal('8')).as_refill(Decimal('2'))

        result = evaluate_purchase(customer=CUSTOMER, current_balance=Decimal('10'), order_items=[refill])

        assert result.total == Decimal('2')

    def test_quantity_on_dict_items(self):
        result = evaluate_purchase(
            customer=CUSTOMER,
            current_balance=Decimal('100'),
            order_items=[{'product_id': 'juice', 'price': '20', 'quantity': 3}],
        )

        assert result.total == Decimal('60')

    def test_malformed_values_coerced_to_zero(self):
        result = evaluate_purchase(
            customer=CUSTOMER,
            current_balance='NaN',
            order_items=[{'product_id': 'x', 'price': 'abc'}],
            max_overdraft=None,
        )

        assert result.total == Decimal('0')
        assert result.new_balance == Decimal('0')
        assert result.ok is True

    def test_price_falls_back_to_catalog(self):
        products = [ProductInfo(id='juice', institution_id='inst-1', name='Juice', price=Decimal('20'))]

        result = evaluate_purchase(
            customer=CUSTOMER,
            current_balance=Decimal('50'),
            order_items=[{'product_id': 'juice'}],
            products=products,
        )

        assert result.total == Decimal('20')

    def test_same_inputs_same_result(self):
        order = [
            OrderLine(product_id='juice', name='Juice', price=Decimal('20')),
            OrderLine(product_id='juice', name='Juice', price=Decimal('20')),
            OrderLine(product_id='saft', name='Saft', price=Decimal('8'), effective_price=Decimal('2'), is_refill=True),
        ]
        kwargs = {
            'customer': CUSTOMER,
            'current_balance': Decimal('50'),
            'order_items': order,
            'max_overdraft': Decimal('-10'),
        }

        first = evaluate_purchase(**kwargs)
        second = evaluate_purchase(**kwargs)

        assert first == second
        assert first.total == Decimal('42')
        assert len(order) == 3
