"""
Data source for the purchase engine.

The engine reads products, limits, profiles and today's sales through a
`CafeDataSource` and writes through its ledger methods. `OrmCafeDataSource`
is the implementation backed by this project's models; tests and other
backends can pass their own object with the same methods.
"""

import functools
import time
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Protocol

import structlog
from django.db import DatabaseError
from django.db.models import Sum

from apps.accounts.models import User, UserRole
from apps.catalog.models import (
    ChildAllergenSetting,
    ParentLimit,
    ParentSugarPolicy,
    Product,
    ProductAllergen,
    ProductLimit,
)
from apps.institutions.models import Institution
from apps.purchases.models import Sale, SaleItem

from . import ledger
from .exceptions import CafeServiceError, CustomerNotFoundError, DataSourceError
from .records import (
    CommitLine,
    CommitResult,
    CustomerInfo,
    InstitutionSettings,
    ProductInfo,
    SaleItemRow,
    SaleRow,
    SugarPolicy,
    UndoResult,
    UnhealthySnapshot,
)
from .local_day import local_day_range


logger = structlog.get_logger(__name__)


class CafeDataSource(Protocol):
    def get_product(self, product_id: str) -> Optional[ProductInfo]: ...

    def list_products(self, institution_id: str) -> List[ProductInfo]: ...

    def get_institution_limit(self, institution_id: str, product_id: str) -> Optional[int]: ...

    def list_institution_limits(self, institution_id: str) -> Dict[str, int]: ...

    def get_parent_limit(self, child_id: str, product_id: str) -> Optional[int]: ...

    def list_parent_limits(self, child_id: str) -> Dict[str, int]: ...

    def get_child_profile(self, child_id: str) -> Optional[CustomerInfo]: ...

    def list_customers(self, institution_id: str) -> List[CustomerInfo]: ...

    def get_institution_settings(self, institution_id: str) -> Optional[InstitutionSettings]: ...

    def get_parent_sugar_policy(self, child_id: str) -> Optional[SugarPolicy]: ...

    def check_sugar_policy(self, child_id: str) -> UnhealthySnapshot: ...

    def get_allergy_policy(self, child_id: str, institution_id: Optional[str] = None) -> Dict[str, str]: ...

    def list_product_allergens(self, product_ids: Iterable[str]) -> Dict[str, List[str]]: ...

    def list_todays_sales(
        self,
        *,
        child_id: str,
        start: datetime,
        end: datetime,
        institution_id: Optional[str] = None
    ) -> List[SaleRow]: ...

    def get_balance(self, user_id: str) -> Decimal: ...

    def commit_sale(
        self,
        *,
        customer_id: str,
        lines: Iterable[CommitLine],
        session_admin_id: Optional[str] = None,
        session_admin_name: str = '',
        clerk_id: Optional[str] = None
    ) -> CommitResult: ...

    def undo_last_sale(self, *, institution_id: str, performed_by_id: Optional[str] = None) -> UndoResult: ...

    def deposit(self, *, user_id: str, amount, performed_by_id: Optional[str] = None) -> Decimal: ...

    def edit_balance(self, *, user_id: str, new_balance, performed_by_id: Optional[str] = None) -> Decimal: ...


def logged_call(func):
    """
    Log a data source call with its duration.

    Database failures are re-raised as DataSourceError so the engine only
    has to know about its own exception hierarchy.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        started = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except CafeServiceError as exc:
            logger.warning("data_source_call_failed", method=func.__name__, error=str(exc))
            raise
        except DatabaseError as exc:
            logger.error("data_source_call_failed", method=func.__name__, error=str(exc), exc_info=True)
            raise DataSourceError(str(exc)) from exc
        logger.debug(
            "data_source_call",
            method=func.__name__,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return result
    return wrapper


def _as_uuid(value) -> Optional[uuid.UUID]:
    if value is None or value == '':
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _positive_or_none(value) -> Optional[int]:
    if value is None:
        return None
    return value if value > 0 else None


class OrmCafeDataSource:
    """CafeDataSource backed by the Django ORM."""

    @logged_call
    def get_product(self, product_id):
        pk = _as_uuid(product_id)
        if pk is None:
            return None
        product = Product.objects.filter(id=pk).first()
        return ProductInfo.from_model(product) if product else None

    @logged_call
    def list_products(self, institution_id):
        pk = _as_uuid(institution_id)
        if pk is None:
            return []
        return [ProductInfo.from_model(p) for p in Product.objects.filter(institution_id=pk)]

    @logged_call
    def get_institution_limit(self, institution_id, product_id):
        """Club cap for one product. A ProductLimit row wins over Product.max_per_day."""
        institution_pk, product_pk = _as_uuid(institution_id), _as_uuid(product_id)
        if institution_pk is None or product_pk is None:
            return None
        row = ProductLimit.objects.filter(institution_id=institution_pk, product_id=product_pk).first()
        if row is not None:
            return _positive_or_none(row.max_per_day)
        max_per_day = (
            Product.objects
            .filter(id=product_pk, institution_id=institution_pk)
            .values_list('max_per_day', flat=True)
            .first()
        )
        return _positive_or_none(max_per_day)

    @logged_call
    def list_institution_limits(self, institution_id):
        pk = _as_uuid(institution_id)
        if pk is None:
            return {}
        limits = {}
        for product_id, max_per_day in Product.objects.filter(institution_id=pk).values_list('id', 'max_per_day'):
            if _positive_or_none(max_per_day) is not None:
                limits[str(product_id)] = max_per_day
        for row in ProductLimit.objects.filter(institution_id=pk):
            value = _positive_or_none(row.max_per_day)
            if value is None:
                limits.pop(str(row.product_id), None)
            else:
                limits[str(row.product_id)] = value
        return limits

    @logged_call
    def get_parent_limit(self, child_id, product_id):
        child_pk, product_pk = _as_uuid(child_id), _as_uuid(product_id)
        if child_pk is None or product_pk is None:
            return None
        return (
            ParentLimit.objects
            .filter(child_id=child_pk, product_id=product_pk)
            .values_list('max_per_day', flat=True)
            .first()
        )

    @logged_call
    def list_parent_limits(self, child_id):
        pk = _as_uuid(child_id)
        if pk is None:
            return {}
        return {
            str(product_id): max_per_day
            for product_id, max_per_day in ParentLimit.objects.filter(child_id=pk).values_list('product_id', 'max_per_day')
        }

    @logged_call
    def get_child_profile(self, child_id):
        pk = _as_uuid(child_id)
        if pk is None:
            return None
        user = User.objects.filter(id=pk).first()
        return CustomerInfo.from_model(user) if user else None

    @logged_call
    def list_customers(self, institution_id):
        pk = _as_uuid(institution_id)
        if pk is None:
            return []
        users = User.objects.filter(institution_id=pk, is_active=True).exclude(role=UserRole.CLERK)
        return [CustomerInfo.from_model(user) for user in users]

    @logged_call
    def get_institution_settings(self, institution_id):
        pk = _as_uuid(institution_id)
        if pk is None:
            return None
        institution = Institution.objects.filter(id=pk).first()
        return InstitutionSettings.from_model(institution) if institution else None

    @logged_call
    def get_parent_sugar_policy(self, child_id):
        pk = _as_uuid(child_id)
        if pk is None:
            return None
        row = ParentSugarPolicy.objects.filter(child_id=pk).first()
        if row is None:
            return None
        return SugarPolicy(
            block_unhealthy=row.block_unhealthy,
            max_unhealthy_per_day=row.max_unhealthy_per_day,
            max_unhealthy_per_product_per_day=row.max_unhealthy_per_product_per_day,
        )

    @logged_call
    def check_sugar_policy(self, child_id):
        """Count unhealthy items the child bought today (local day)."""
        pk = _as_uuid(child_id)
        if pk is None:
            return UnhealthySnapshot()
        start, end = local_day_range()
        per_product = (
            SaleItem.objects
            .filter(
                sale__customer_id=pk,
                sale__undone_at__isnull=True,
                sale__created_at__gte=start,
                sale__created_at__lt=end,
                product__unhealthy=True,
            )
            .values('product_id')
            .annotate(qty=Sum('quantity'))
        )
        counts = {str(row['product_id']): row['qty'] for row in per_product}
        return UnhealthySnapshot(
            unhealthy_total=sum(counts.values()),
            unhealthy_per_product=counts,
        )

    @logged_call
    def get_allergy_policy(self, child_id, institution_id=None):
        """Allergen key to allow/warn/block for the child."""
        pk = _as_uuid(child_id)
        if pk is None:
            return {}
        rows = ChildAllergenSetting.objects.filter(child_id=pk)
        institution_pk = _as_uuid(institution_id)
        if institution_pk is not None:
            rows = rows.filter(institution_id=institution_pk)
        return {allergen: policy for allergen, policy in rows.values_list('allergen', 'policy')}

    @logged_call
    def list_product_allergens(self, product_ids):
        pks = {pk for pk in (_as_uuid(product_id) for product_id in product_ids) if pk is not None}
        if not pks:
            return {}
        rows = ProductAllergen.objects.filter(product_id__in=pks).values_list('product_id', 'allergen')
        allergens = {}
        for product_id, allergen in rows:
            allergens.setdefault(str(product_id), []).append(allergen)
        return allergens

    @logged_call
    def list_todays_sales(self, *, child_id, start, end, institution_id=None):
        pk = _as_uuid(child_id)
        if pk is None:
            return []
        sales = Sale.objects.filter(
            customer_id=pk,
            created_at__gte=start,
            created_at__lt=end,
            undone_at__isnull=True,
        ).prefetch_related('items')
        institution_pk = _as_uuid(institution_id)
        if institution_pk is not None:
            sales = sales.filter(institution_id=institution_pk)

        return [
            SaleRow(
                created_at=sale.created_at,
                total_amount=sale.total_amount,
                items=[
                    SaleItemRow(
                        product_id=str(item.product_id) if item.product_id else None,
                        quantity=item.quantity,
                        price=item.price_at_purchase,
                        is_refill=item.is_refill,
                        product_name=item.product_name_at_purchase,
                    )
                    for item in sale.items.all()
                ],
            )
            for sale in sales
        ]

    @logged_call
    def get_balance(self, user_id):
        pk = _as_uuid(user_id)
        balance = User.objects.filter(id=pk).values_list('balance', flat=True).first() if pk else None
        if balance is None:
            raise CustomerNotFoundError(f"User with ID {user_id} not found")
        return balance

    @logged_call
    def commit_sale(self, *, customer_id, lines, session_admin_id=None, session_admin_name='', clerk_id=None):
        return ledger.commit_sale(
            customer_id=customer_id,
            lines=lines,
            session_admin_id=session_admin_id,
            session_admin_name=session_admin_name,
            clerk_id=clerk_id,
        )

    @logged_call
    def undo_last_sale(self, *, institution_id, performed_by_id=None):
        return ledger.undo_last_sale(institution_id=institution_id, performed_by_id=performed_by_id)

    @logged_call
    def deposit(self, *, user_id, amount, performed_by_id=None):
        return ledger.deposit(user_id=user_id, amount=amount, performed_by_id=performed_by_id)

    @logged_call
    def edit_balance(self, *, user_id, new_balance, performed_by_id=None):
        return ledger.edit_balance(user_id=user_id, new_balance=new_balance, performed_by_id=performed_by_id)


_default_data_source: Optional[CafeDataSource] = None


def get_data_source() -> CafeDataSource:
    """Return the process-wide data source (ORM by default)."""
    global _default_data_source
    if _default_data_source is None:
        _default_data_source = OrmCafeDataSource()
    return _default_data_source


def set_data_source(data_source: Optional[CafeDataSource]) -> None:
    """Swap the process-wide data source. Passing None restores the ORM one."""
    global _default_data_source
    _default_data_source = data_source
