"""
Plain records passed between the data source and the engine.

Ids are carried as strings so cart lines, cache keys and sale rows
compare equal regardless of where they came from.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional


TWO_PLACES = Decimal('0.01')


def safe_decimal(value, fallback=Decimal('0')) -> Decimal:
    """
    Coerce a money-like value to Decimal.

    Returns the fallback for None, non-numeric, NaN or infinite input.
    """
    if value is None or isinstance(value, bool):
        return Decimal(fallback)
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return Decimal(fallback)
    if not result.is_finite():
        return Decimal(fallback)
    return result


def money(value) -> Decimal:
    """Quantize to two decimal places."""
    return safe_decimal(value).quantize(TWO_PLACES)


@dataclass(frozen=True)
class ProductInfo:
    id: str
    institution_id: Optional[str]
    name: str
    price: Decimal
    emoji: str = ''
    max_per_day: Optional[int] = None
    unhealthy: bool = False
    is_enabled: bool = True
    sort_order: int = 0
    refill_enabled: bool = False
    refill_price: Optional[Decimal] = None
    refill_time_limit_minutes: int = 0
    refill_max_refills: int = 0

    @classmethod
    def from_model(cls, product) -> 'ProductInfo':
        return cls(
            id=str(product.id),
            institution_id=str(product.institution_id) if product.institution_id else None,
            name=product.name,
            price=safe_decimal(product.price),
            emoji=product.emoji or '',
            max_per_day=product.max_per_day,
            unhealthy=product.unhealthy,
            is_enabled=product.is_enabled,
            sort_order=product.sort_order,
            refill_enabled=product.refill_enabled,
            refill_price=product.refill_price,
            refill_time_limit_minutes=product.refill_time_limit_minutes or 0,
            refill_max_refills=product.refill_max_refills or 0,
        )


@dataclass
class CustomerInfo:
    """Customer as mirrored in memory. `balance` follows the ledger."""

    id: str
    name: str
    institution_id: Optional[str]
    balance: Decimal
    daily_spend_limit: Optional[Decimal] = None
    role: str = 'child'
    is_test_user: bool = False

    @classmethod
    def from_model(cls, user) -> 'CustomerInfo':
        return cls(
            id=str(user.id),
            name=user.get_display_name(),
            institution_id=str(user.institution_id) if user.institution_id else None,
            balance=safe_decimal(user.balance),
            daily_spend_limit=user.daily_spend_limit,
            role=user.role,
            is_test_user=user.is_test_user,
        )

    @property
    def is_admin(self) -> bool:
        return self.role == 'admin'


@dataclass(frozen=True)
class InstitutionSettings:
    id: str
    name: str = ''
    balance_limit_enabled: bool = True
    balance_limit_amount: Optional[Decimal] = None
    balance_limit_exempt_admins: bool = False
    balance_limit_exempt_test_users: bool = False
    spending_limit_enabled: bool = False
    spending_limit_amount: Decimal = Decimal('40.00')
    spending_limit_applies_to_regular_users: bool = True
    spending_limit_applies_to_admins: bool = False
    spending_limit_applies_to_test_users: bool = False
    sugar_policy_enabled: bool = False
    sugar_policy_max_unhealthy_enabled: bool = False
    sugar_policy_max_unhealthy_per_day: int = 2
    sugar_policy_max_per_product_enabled: bool = True
    sugar_policy_max_per_product_per_day: int = 1
    admins_purchase_free: bool = False

    @classmethod
    def from_model(cls, institution) -> 'InstitutionSettings':
        return cls(
            id=str(institution.id),
            name=institution.name,
            balance_limit_enabled=institution.balance_limit_enabled,
            balance_limit_amount=institution.balance_limit_amount,
            balance_limit_exempt_admins=institution.balance_limit_exempt_admins,
            balance_limit_exempt_test_users=institution.balance_limit_exempt_test_users,
            spending_limit_enabled=institution.spending_limit_enabled,
            spending_limit_amount=institution.spending_limit_amount,
            spending_limit_applies_to_regular_users=institution.spending_limit_applies_to_regular_users,
            spending_limit_applies_to_admins=institution.spending_limit_applies_to_admins,
            spending_limit_applies_to_test_users=institution.spending_limit_applies_to_test_users,
            sugar_policy_enabled=institution.sugar_policy_enabled,
            sugar_policy_max_unhealthy_enabled=institution.sugar_policy_max_unhealthy_enabled,
            sugar_policy_max_unhealthy_per_day=institution.sugar_policy_max_unhealthy_per_day,
            sugar_policy_max_per_product_enabled=institution.sugar_policy_max_per_product_enabled,
            sugar_policy_max_per_product_per_day=institution.sugar_policy_max_per_product_per_day,
            admins_purchase_free=institution.admins_purchase_free,
        )


@dataclass(frozen=True)
class SaleItemRow:
    product_id: Optional[str]
    quantity: int
    price: Decimal
    is_refill: bool = False
    product_name: str = ''


@dataclass(frozen=True)
class SaleRow:
    created_at: datetime
    items: List[SaleItemRow] = field(default_factory=list)
    total_amount: Optional[Decimal] = None

    @property
    def total(self) -> Decimal:
        if self.total_amount is not None:
            return safe_decimal(self.total_amount)
        return sum((safe_decimal(item.price) * item.quantity for item in self.items), Decimal('0'))


@dataclass(frozen=True)
class SalesLookup:
    """Today's sales for one child. `error` is set instead of raising."""

    rows: List[SaleRow] = field(default_factory=list)
    error: Optional[str] = None


@dataclass(frozen=True)
class SugarPolicy:
    block_unhealthy: bool = False
    max_unhealthy_per_day: Optional[int] = None
    max_unhealthy_per_product_per_day: Optional[int] = None

    @property
    def is_active(self) -> bool:
        return (
            self.block_unhealthy
            or self.max_unhealthy_per_day is not None
            or self.max_unhealthy_per_product_per_day is not None
        )


@dataclass(frozen=True)
class UnhealthySnapshot:
    """Unhealthy items the child already bought today."""

    unhealthy_total: int = 0
    unhealthy_per_product: Dict[str, int] = field(default_factory=dict)

    @property
    def bought_unhealthy_product_ids(self) -> List[str]:
        return [pid for pid, qty in self.unhealthy_per_product.items() if qty > 0]


@dataclass(frozen=True)
class CommitLine:
    """Grouped cart line sent to the ledger."""

    product_id: str
    quantity: int
    price: Decimal
    is_refill: bool = False
    product_name: str = ''


@dataclass(frozen=True)
class CommitResult:
    sale_id: str
    total: Decimal
    new_balance: Decimal


@dataclass(frozen=True)
class UndoResult:
    sale_id: str
    customer_id: str
    customer_name: str
    refunded_amount: Decimal
    new_balance: Decimal


@dataclass(frozen=True)
class BalanceEventInfo:
    """Realtime balance event as delivered to the balance sync."""

    event_type: str
    user_id: str
    institution_id: Optional[str]
    amount: Decimal
    new_balance: Decimal
    source: str = ''
