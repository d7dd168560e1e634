"""
Ledger writes: sale commit, undo, deposit and balance edit.

Every write locks the customer row, updates the stored balance and
records a BalanceEvent. Subscribers are notified once the transaction
commits.
"""

from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from apps.accounts.models import User
from apps.catalog.models import Product
from apps.purchases.models import Sale, SaleItem, BalanceEvent, BalanceEventType
from apps.purchases.signals import balance_event_recorded

from .exceptions import SaleCommitError, CustomerNotFoundError, InvalidAmountError
from .records import BalanceEventInfo, CommitLine, CommitResult, UndoResult, money


def _lock_user(user_id) -> User:
    try:
        return User.objects.select_for_update().get(id=user_id)
    except (User.DoesNotExist, ValidationError):
        raise CustomerNotFoundError(f"User with ID {user_id} not found")


def _parse_amount(value) -> Decimal:
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmountError(f"Invalid amount: {value!r}")
    if not amount.is_finite():
        raise InvalidAmountError(f"Invalid amount: {value!r}")
    return money(amount)


def _record_event(
    *,
    user: User,
    event_type: str,
    amount: Decimal,
    source: str,
    created_by_id=None,
    details: Optional[dict] = None
) -> BalanceEvent:
    event = BalanceEvent.objects.create(
        institution_id=user.institution_id,
        target_user=user,
        event_type=event_type,
        amount=amount,
        balance_after=user.balance,
        source=source,
        created_by_id=created_by_id,
        details=details or {},
    )
    info = BalanceEventInfo(
        event_type=event_type,
        user_id=str(user.id),
        institution_id=str(user.institution_id) if user.institution_id else None,
        amount=amount,
        new_balance=user.balance,
        source=source,
    )
    transaction.on_commit(
        lambda: balance_event_recorded.send(sender=BalanceEvent, event=info)
    )
    return event


@transaction.atomic
def commit_sale(
    *,
    customer_id,
    lines: Iterable[CommitLine],
    session_admin_id=None,
    session_admin_name: str = '',
    clerk_id=None
) -> CommitResult:
    """
    Record a sale and charge the customer.

    Args:
        customer_id: Customer being charged
        lines: Cart grouped by (product, refill)
        session_admin_id: Admin running the café session
        session_admin_name: Display name stored with the sale
        clerk_id: Clerk ringing up the sale, if any

    Returns:
        CommitResult with the sale id, total and resulting balance

    Raises:
        CustomerNotFoundError: If the customer doesn't exist
        SaleCommitError: If the cart is empty or references unknown products
    """
    lines = list(lines)
    if not lines:
        raise SaleCommitError("Cannot commit an empty sale")

    customer = _lock_user(customer_id)
    if not customer.institution_id:
        raise SaleCommitError("Customer is not attached to an institution")

    product_ids = {line.product_id for line in lines}
    products = Product.objects.filter(
        id__in=product_ids,
        institution_id=customer.institution_id
    ).in_bulk()
    found = {str(pk) for pk in products}
    missing = product_ids - found
    if missing:
        raise SaleCommitError(f"Unknown products: {', '.join(sorted(missing))}")

    total = Decimal('0.00')
    for line in lines:
        if line.quantity < 1:
            raise SaleCommitError(f"Invalid quantity {line.quantity} for {line.product_name}")
        total += money(line.price) * line.quantity

    sale = Sale.objects.create(
        customer=customer,
        institution_id=customer.institution_id,
        session_admin_id=session_admin_id,
        session_admin_name=session_admin_name or '',
        clerk_id=clerk_id,
        total_amount=total,
    )
    SaleItem.objects.bulk_create([
        SaleItem(
            sale=sale,
            product_id=line.product_id,
            quantity=line.quantity,
            price_at_purchase=money(line.price),
            is_refill=line.is_refill,
            product_name_at_purchase=line.product_name[:120],
        )
        for line in lines
    ])

    customer.balance = money(customer.balance) - total
    customer.save(update_fields=['balance'])

    _record_event(
        user=customer,
        event_type=BalanceEventType.SALE,
        amount=-total,
        source='purchase',
        created_by_id=clerk_id or session_admin_id,
        details={'sale_id': str(sale.id)},
    )

    return CommitResult(sale_id=str(sale.id), total=total, new_balance=customer.balance)


@transaction.atomic
def undo_last_sale(*, institution_id, performed_by_id=None) -> UndoResult:
    """
    Reverse the most recent sale of an institution.

    The sale row is kept with `undone_at` set so it no longer counts
    towards today's limits.

    Raises:
        SaleCommitError: If there is no sale to undo
    """
    sale = (
        Sale.objects
        .select_for_update()
        .filter(institution_id=institution_id, undone_at__isnull=True)
        .order_by('-created_at')
        .first()
    )
    if sale is None:
        raise SaleCommitError("There is no sale to undo")

    customer = _lock_user(sale.customer_id)
    refund = money(sale.total_amount)
    customer.balance = money(customer.balance) + refund
    customer.save(update_fields=['balance'])

    sale.undone_at = timezone.now()
    sale.undone_by_id = performed_by_id
    sale.save(update_fields=['undone_at', 'undone_by'])

    _record_event(
        user=customer,
        event_type=BalanceEventType.SALE_UNDO,
        amount=refund,
        source='undo',
        created_by_id=performed_by_id,
        details={'sale_id': str(sale.id)},
    )

    return UndoResult(
        sale_id=str(sale.id),
        customer_id=str(customer.id),
        customer_name=customer.get_display_name(),
        refunded_amount=refund,
        new_balance=customer.balance,
    )


@transaction.atomic
def deposit(*, user_id, amount, performed_by_id=None) -> Decimal:
    """
    Add money to a customer's balance.

    Raises:
        InvalidAmountError: If amount is not a positive number
        CustomerNotFoundError: If the user doesn't exist
    """
    value = _parse_amount(amount)
    if value <= 0:
        raise InvalidAmountError("Deposit amount must be positive")

    user = _lock_user(user_id)
    user.balance = money(user.balance) + value
    user.save(update_fields=['balance'])

    _record_event(
        user=user,
        event_type=BalanceEventType.DEPOSIT,
        amount=value,
        source='deposit',
        created_by_id=performed_by_id,
    )
    return user.balance


@transaction.atomic
def edit_balance(*, user_id, new_balance, performed_by_id=None) -> Decimal:
    """
    Set a customer's balance directly (admin correction).

    Raises:
        InvalidAmountError: If new_balance is not a number
        CustomerNotFoundError: If the user doesn't exist
    """
    value = _parse_amount(new_balance)

    user = _lock_user(user_id)
    delta = value - money(user.balance)
    user.balance = value
    user.save(update_fields=['balance'])

    _record_event(
        user=user,
        event_type=BalanceEventType.BALANCE_ADJUSTMENT,
        amount=delta,
        source='balance_edit',
        created_by_id=performed_by_id,
    )
    return user.balance
