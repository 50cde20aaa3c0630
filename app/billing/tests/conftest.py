"""
Test configuration and fixtures for billing tests.

Usage:
    def test_example(paying_account, mock_retrieve_subscription):
        mock_retrieve_subscription.return_value = SubscriptionResult.from_stripe(subscription())
"""

import pytest

from credits.tests.factories import CreditAccountFactory
from credits.store import with_account_lock


# =============================================================================
# Account Fixtures
# =============================================================================


@pytest.fixture
def account(db):
    """Free-tier account without Stripe references."""
    return CreditAccountFactory()


@pytest.fixture
def paying_account(db):
    """
    Starter account linked to cus_test_123 / sub_test_123 with 5 credits left.
    """
    account = CreditAccountFactory(tier="starter", balance=5)
    with with_account_lock(account.id) as locked:
        locked.billing_customer_ref = "cus_test_123"
        locked.subscription_ref = "sub_test_123"
        locked.save(update_fields=["billing_customer_ref", "subscription_ref", "updated_at"])
    account.refresh_from_db()
    return account


# =============================================================================
# Stripe Mocks
# =============================================================================


@pytest.fixture
def mock_retrieve_subscription(mocker):
    """Patch the Stripe subscription lookup used by invoice.paid."""
    return mocker.patch("billing.reconciler.StripeAdapter.retrieve_subscription")


@pytest.fixture
def mock_delay(mocker):
    """Patch Celery queueing of webhook processing."""
    return mocker.patch("billing.tasks.process_webhook_event.delay")
