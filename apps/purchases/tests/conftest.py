import pytest
from datetime import timedelta
from decimal import Decimal
from django.utils import timezone
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from apps.accounts.models import User, UserRole
from apps.catalog.models import Product
from apps.institutions.models import Institution
from apps.purchases.models import Sale, SaleItem
from apps.purchases.services import balance_sync, data_source, sales_cache, session
from apps.purchases.services.exceptions import CustomerNotFoundError, DataSourceError, SaleCommitError
from apps.purchases.services.records import (
    CommitResult,
    CustomerInfo,
    InstitutionSettings,
    ProductInfo,
    SaleItemRow,
    SaleRow,
    UnhealthySnapshot,
)


@pytest.fixture(autouse=True)
def reset_engine_state():
    """Every test starts with empty caches, sessions and balance bus."""
    sales_cache._sales_cache = None
    session.reset_cafe_sessions()
    balance_sync.reset_balance_sync()
    data_source.set_data_source(None)
    yield
    sales_cache._sales_cache = None
    session.reset_cafe_sessions()
    balance_sync.reset_balance_sync()
    data_source.set_data_source(None)


# =============================================================================
# In-memory data source
# =============================================================================

class FakeCafeDataSource:
    """CafeDataSource held in dicts; counts sales lookups."""

    def __init__(self):
        self.products = {}
        self.club_limits = {}
        self.parent_limits = {}
        self.children = {}
        self.sales = {}
        self.institutions = {}
        self.parent_sugar_policies = {}
        self.unhealthy = {}
        self.allergy_policies = {}
        self.product_allergens = {}
        self.fail_allergies = False
        self.sales_calls = 0
        self.fail_sales = False
        self.fail_commit = None
        self.committed = []

    def add_product(self, **kwargs):
        defaults = {'institution_id': 'inst-1', 'price': Decimal('10.00')}
        defaults.update(kwargs)
        product = ProductInfo(**defaults)
        self.products[product.id] = product
        return product

    def add_child(self, **kwargs):
        defaults = {'name': 'Child', 'institution_id': 'inst-1', 'balance': Decimal('50.00')}
        defaults.update(kwargs)
        child = CustomerInfo(**defaults)
        self.children[child.id] = child
        return child

    def add_sale(self, child_id, items, created_at=None):
        row = SaleRow(
            created_at=created_at or timezone.now(),
            items=[SaleItemRow(**item) for item in items],
        )
        self.sales.setdefault(child_id, []).append(row)
        return row

    def get_product(self, product_id):
        return self.products.get(str(product_id))

    def list_products(self, institution_id):
        return [p for p in self.products.values() if p.institution_id == institution_id]

    def get_institution_limit(self, institution_id, product_id):
        return self.club_limits.get(str(product_id))

    def list_institution_limits(self, institution_id):
        return dict(self.club_limits)

    def get_parent_limit(self, child_id, product_id):
        return self.parent_limits.get((str(child_id), str(product_id)))

    def list_parent_limits(self, child_id):
        return {pid: value for (cid, pid), value in self.parent_limits.items() if cid == str(child_id)}

    def get_child_profile(self, child_id):
        return self.children.get(str(child_id))

    def list_customers(self, institution_id):
        return [c for c in self.children.values() if c.institution_id == institution_id]

    def get_institution_settings(self, institution_id):
        return self.institutions.get(institution_id)

    def get_parent_sugar_policy(self, child_id):
        return self.parent_sugar_policies.get(str(child_id))

    def check_sugar_policy(self, child_id):
        return self.unhealthy.get(str(child_id), UnhealthySnapshot())

    def get_allergy_policy(self, child_id, institution_id=None):
        if self.fail_allergies:
            raise DataSourceError('allergen settings unavailable')
        return dict(self.allergy_policies.get(str(child_id), {}))

    def list_product_allergens(self, product_ids):
        return {pid: list(self.product_allergens[pid]) for pid in product_ids if pid in self.product_allergens}

    def list_todays_sales(self, *, child_id, start, end, institution_id=None):
        self.sales_calls += 1
        if self.fail_sales:
            raise DataSourceError('sales table unavailable')
        return [row for row in self.sales.get(str(child_id), []) if start <= row.created_at < end]

    def get_balance(self, user_id):
        child = self.children.get(str(user_id))
        if child is None:
            raise CustomerNotFoundError(user_id)
        return child.balance

    def commit_sale(self, *, customer_id, lines, session_admin_id=None, session_admin_name='', clerk_id=None):
        if self.fail_commit:
            raise SaleCommitError(self.fail_commit)
        lines = list(lines)
        total = sum((line.price * line.quantity for line in lines), Decimal('0'))
        child = self.children[str(customer_id)]
        new_balance = child.balance - total
        self.children[child.id] = CustomerInfo(**{**child.__dict__, 'balance': new_balance})
        self.committed.append(lines)
        return CommitResult(sale_id=f'sale-{len(self.committed)}', total=total, new_balance=new_balance)

    def undo_last_sale(self, *, institution_id, performed_by_id=None):
        raise SaleCommitError('There is no sale to undo')

    def deposit(self, *, user_id, amount, performed_by_id=None):
        raise NotImplementedError

    def edit_balance(self, *, user_id, new_balance, performed_by_id=None):
        raise NotImplementedError


@pytest.fixture
def fake_source():
    return FakeCafeDataSource()


@pytest.fixture
def fake_institution_settings():
    return InstitutionSettings(id='inst-1', name='Test SFO')


# =============================================================================
# Database fixtures
# =============================================================================

@pytest.fixture
def institution(db):
    return Institution.objects.create(name='Solsikken SFO')


@pytest.fixture
def other_institution(db):
    return Institution.objects.create(name='Other Club')


@pytest.fixture
def admin_user(institution):
    return User.objects.create_user(
        email='admin@example.com',
        password='TestPass123!',
        name='Café Admin',
        institution=institution,
        role=UserRole.ADMIN,
    )


@pytest.fixture
def clerk_user(institution):
    return User.objects.create_user(
        email='clerk@example.com',
        password='TestPass123!',
        name='Café Clerk',
        institution=institution,
        role=UserRole.CLERK,
    )


@pytest.fixture
def child(institution):
    return User.objects.create_child(name='Emma', institution=institution, balance=Decimal('50.00'))


@pytest.fixture
def other_child(other_institution):
    return User.objects.create_child(name='Noah', institution=other_institution, balance=Decimal('20.00'))


@pytest.fixture
def juice(institution):
    return Product.objects.create(institution=institution, name='Juice', emoji='🧃', price=Decimal('20.00'))


@pytest.fixture
def toast(institution):
    return Product.objects.create(institution=institution, name='Toast', emoji='🍞', price=Decimal('40.00'))


@pytest.fixture
def candy(institution):
    return Product.objects.create(
        institution=institution, name='Candy', emoji='🍬', price=Decimal('5.00'), unhealthy=True
    )


@pytest.fixture
def saft(institution):
    return Product.objects.create(
        institution=institution,
        name='Saft',
        emoji='🥤',
        price=Decimal('8.00'),
        refill_enabled=True,
        refill_price=Decimal('2.00'),
        refill_time_limit_minutes=30,
        refill_max_refills=1,
    )


@pytest.fixture
def make_sale():
    """Create a completed sale directly in the ledger tables."""
    def _make_sale(customer, product, quantity=1, price=None, is_refill=False, created_at=None, minutes_ago=None):
        if created_at is None:
            created_at = timezone.now() - timedelta(minutes=minutes_ago or 0)
        price = product.price if price is None else price
        sale = Sale.objects.create(
            customer=customer,
            institution=customer.institution,
            total_amount=price * quantity,
            created_at=created_at,
        )
        SaleItem.objects.create(
            sale=sale,
            product=product,
            quantity=quantity,
            price_at_purchase=price,
            is_refill=is_refill,
            product_name_at_purchase=f'{product.name} Refill' if is_refill else product.name,
        )
        return sale
    return _make_sale


# =============================================================================
# API clients
# =============================================================================

@pytest.fixture
def api_client():
    """Return an unauthenticated API client."""
    return APIClient()


def _client_for(user):
    client = APIClient()
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return client


@pytest.fixture
def admin_client(admin_user):
    """Return API client authenticated as institution admin."""
    return _client_for(admin_user)


@pytest.fixture
def clerk_client(clerk_user):
    """Return API client authenticated as clerk."""
    return _client_for(clerk_user)
