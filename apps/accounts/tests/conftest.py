import pytest
from decimal import Decimal

from apps.accounts.models import User, UserRole
from apps.institutions.models import Institution


@pytest.fixture
def institution(db):
    return Institution.objects.create(name='Solsikken SFO')


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
