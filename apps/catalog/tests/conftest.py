import pytest
from decimal import Decimal
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from apps.accounts.models import User, UserRole
from apps.catalog.models import Product
from apps.institutions.models import Institution


@pytest.fixture
def api_client():
    """Return an unauthenticated API client."""
    return APIClient()


@pytest.fixture
def institution(db):
    return Institution.objects.create(name='Solsikken SFO')


@pytest.fixture
def other_institution(db):
    return Institution.objects.create(name='Other Club')


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
def clerk_client(clerk_user):
    """Return API client authenticated as clerk."""
    client = APIClient()
    refresh = RefreshToken.for_user(clerk_user)
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return client


@pytest.fixture
def products(institution, other_institution):
    """Two products of the clerk's institution (one disabled) and one foreign."""
    return {
        'toast': Product.objects.create(institution=institution, name='Toast', price=Decimal('10.00'), sort_order=1),
        'bun': Product.objects.create(
            institution=institution, name='Old Bun', price=Decimal('5.00'), is_enabled=False, sort_order=2
        ),
        'cola': Product.objects.create(institution=other_institution, name='Cola', price=Decimal('12.00')),
    }
