"""
Fixtures for the credits tests.

``client_for`` and ``api_client`` come from app/conftest.py.
"""

import pytest

from authentication.tests.factories import UserFactory
from credits.tests.factories import CreditAccountFactory


@pytest.fixture
def account(db):
    """Free-tier account holding the free allowance (1000)."""
    return CreditAccountFactory()


@pytest.fixture
def admin_account(db):
    """Admin account with an empty balance."""
    return CreditAccountFactory(balance=0, is_admin=True)


@pytest.fixture
def starter_account(db):
    """Starter-tier account with 5 credits left."""
    return CreditAccountFactory(tier="starter", balance=5)


@pytest.fixture
def staff_client(db, client_for):
    """Client for a Django staff user, used by the admin console endpoints."""
    staff = UserFactory(is_staff=True)
    client = client_for(staff.credit_account)
    client.staff_user = staff
    return client
