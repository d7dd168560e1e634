"""
Tests for the ledger writes.

Tests cover:
- Sale commit with grouped lines and balance charge
- Undo of the most recent sale
- Deposits and balance edits with their audit events
"""

import pytest
from decimal import Decimal

from apps.purchases.models import BalanceEvent, BalanceEventType, Sale
from apps.purchases.services import ledger
from apps.purchases.services.exceptions import (
    CustomerNotFoundError,
    InvalidAmountError,
    SaleCommitError,
)
from apps.purchases.services.records import CommitLine


@pytest.mark.django_db
class TestCommitSale:
    """Tests for ledger.commit_sale()."""

    def test_charges_customer(self, child, juice, saft, admin_user):
        result = ledger.commit_sale(
            customer_id=child.id,
            lines=[
                CommitLine(product_id=str(juice.id), quantity=2, price=Decimal('20.00'), product_name='Juice'),
                CommitLine(product_id=str(saft.id), quantity=1, price=Decimal('2.00'), is_refill=True,
                           product_name='Saft Refill'),
            ],
            session_admin_id=str(admin_user.id),
            session_admin_name=admin_user.name,
        )

        child.refresh_from_db()
        sale = Sale.objects.get(id=result.sale_id)
        assert result.total == Decimal('42.00')
        assert child.balance == Decimal('8.00')
        assert result.new_balance == Decimal('8.00')
        assert sale.items.count() == 2
        assert sale.items.get(is_refill=True).product_name_at_purchase == 'Saft Refill'
        assert BalanceEvent.objects.get(target_user=child).event_type == BalanceEventType.SALE

    def test_empty_sale_rejected(self, child):
        with pytest.raises(SaleCommitError):
            ledger.commit_sale(customer_id=child.id, lines=[])

    def test_foreign_product_rejected(self, child, other_institution):
        from apps.catalog.models import Product

        foreign = Product.objects.create(institution=other_institution, name='Cola', price=Decimal('10.00'))

        with pytest.raises(SaleCommitError):
            ledger.commit_sale(
                customer_id=child.id,
                lines=[CommitLine(product_id=str(foreign.id), quantity=1, price=Decimal('10.00'))],
            )

        child.refresh_from_db()
        assert child.balance == Decimal('50.00')

    def test_unknown_customer(self, juice):
        with pytest.raises(CustomerNotFoundError):
            ledger.commit_sale(
                customer_id='not-a-uuid',
                lines=[CommitLine(product_id=str(juice.id), quantity=1, price=Decimal('20.00'))],
            )


@pytest.mark.django_db
class TestUndoLastSale:
    def test_refunds_latest_sale(self, child, juice, toast, admin_user, make_sale):
        make_sale(child, juice, minutes_ago=10)
        latest = make_sale(child, toast, minutes_ago=1)

        result = ledger.undo_last_sale(institution_id=child.institution_id, performed_by_id=admin_user.id)

        child.refresh_from_db()
        latest.refresh_from_db()
        assert result.sale_id == str(latest.id)
        assert result.refunded_amount == Decimal('40.00')
        assert child.balance == Decimal('90.00')
        assert latest.is_undone is True
        assert latest.undone_by == admin_user

    def test_undone_sale_not_undone_twice(self, child, juice, make_sale):
        make_sale(child, juice)
        ledger.undo_last_sale(institution_id=child.institution_id)

        with pytest.raises(SaleCommitError, match='no sale to undo'):
            ledger.undo_last_sale(institution_id=child.institution_id)


@pytest.mark.django_db
class TestDepositAndBalanceEdit:
    def test_deposit(self, child):
        assert ledger.deposit(user_id=child.id, amount=Decimal('10.50')) == Decimal('60.50')
        assert BalanceEvent.objects.get(target_user=child).amount == Decimal('10.50')

    @pytest.mark.parametrize('amount', ['0', '-5', 'abc', 'NaN'])
    def test_deposit_invalid_amount(self, child, amount):
        with pytest.raises(InvalidAmountError):
            ledger.deposit(user_id=child.id, amount=amount)

    def test_edit_balance_records_delta(self, child, admin_user):
        ledger.edit_balance(user_id=child.id, new_balance='20.00', performed_by_id=admin_user.id)

        event = BalanceEvent.objects.get(target_user=child)
        assert event.event_type == BalanceEventType.BALANCE_ADJUSTMENT
        assert event.amount == Decimal('-30.00')
        assert event.balance_after == Decimal('20.00')
        assert event.created_by == admin_user
