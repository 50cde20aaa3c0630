"""
Hooks and fixtures shared by the authentication, credits and billing tests.
"""

import logging

import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken


def pytest_configure():
    from django.conf import settings

    # Rate limits would trip on repeated charge calls
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {}
    settings.PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

    if settings.DATABASES["default"]["ENGINE"] == "django.db.backends.postgresql":
        _truncate_with_cascade()


# Test module name -> marker; anything unlisted counts as integration
MODULE_MARKERS = {
    "test_scenarios.py": "e2e",
    "test_models.py": "unit",
    "test_managers.py": "unit",
    "test_signals.py": "unit",
    "test_adapter.py": "unit",
    "test_entitlements.py": "unit",
    "test_costs.py": "unit",
}


def pytest_collection_modifyitems(items):
    """Mark each test unit, integration or e2e unless it already carries one."""
    for item in items:
        if {m.name for m in item.iter_markers()} & {"unit", "integration", "e2e"}:
            continue
        marker = MODULE_MARKERS.get(item.path.name, "integration")
        item.add_marker(getattr(pytest.mark, marker))


def _truncate_with_cascade():
    """
    Force CASCADE onto PostgreSQL flushes.

    TransactionTestCase truncates tables between tests, and ledger rows
    hold foreign keys to credit accounts.
    """
    from django.db.backends.postgresql import operations

    sql_flush = operations.DatabaseOperations.sql_flush

    def cascading_sql_flush(self, style, tables, *, reset_sequences=False, allow_cascade=False):
        return sql_flush(self, style, tables, reset_sequences=reset_sequences, allow_cascade=True)

    operations.DatabaseOperations.sql_flush = cascading_sql_flush


def jwt_client(user) -> APIClient:
    """APIClient carrying a bearer access token for ``user``."""
    client = APIClient()
    token = RefreshToken.for_user(user).access_token
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")
    return client


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def client_for():
    """Build an authenticated client for a credit account's owner: ``client_for(account)``."""
    return lambda credit_account: jwt_client(credit_account.user)


@pytest.fixture
def app_caplog(caplog, monkeypatch):
    """caplog that also sees the credits and billing loggers, which do not propagate."""
    for name in ("credits", "billing"):
        monkeypatch.setattr(logging.getLogger(name), "propagate", True)
    return caplog
