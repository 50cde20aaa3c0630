import pytest

from authentication.tests.factories import UserFactory


@pytest.fixture
def user(db):
    """Verified user; the signal has already opened its credit account."""
    return UserFactory(email_verified=True)


@pytest.fixture
def authenticated_client(user, client_for):
    return client_for(user.credit_account)


@pytest.fixture
def valid_registration_data():
    return {
        "email": "newuser@example.com",
        "name": "New User",
        "password1": "SecurePass123!",
        "password2": "SecurePass123!",
    }
