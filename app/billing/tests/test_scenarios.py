"""
End-to-end billing scenarios through the webhook endpoint and task.

Each event is posted to the webhook view, then processed by calling
the Celery task directly with the queued id.
"""

import json
from unittest.mock import patch

import pytest

from billing.adapters import SubscriptionResult
from billing.models import WebhookEvent, WebhookEventStatus
from billing.tasks import process_webhook_event
from billing.tests.factories import checkout_session, invoice, subscription
from credits.models import CreditTransaction, Tier, TierStatus
from credits.services import CreditService

WEBHOOK_URL = "/api/v1/billing/webhooks/stripe/"


@pytest.fixture
def deliver(client):
    """Post an event through the webhook view and run the queued task."""

    def _deliver(event_id, event_type, obj):
        event = {"id": event_id, "type": event_type, "data": {"object": obj}}
        with patch(
            "billing.webhooks.views.StripeAdapter.verify_webhook_signature",
            return_value=event,
        ), patch("billing.tasks.process_webhook_event.delay") as mock_delay:
            response = client.post(
                WEBHOOK_URL,
                data=json.dumps(event),
                content_type="application/json",
                HTTP_STRIPE_SIGNATURE="t=1,v1=abc",
            )
        assert response.status_code == 200
        for call in mock_delay.call_args_list:
            process_webhook_event(*call.args)
        return WebhookEvent.objects.get(stripe_event_id=event_id)

    return _deliver


class TestSubscriptionLifecycle:
    def test_purchase_renew_fail_cancel(self, account, deliver):
        """
        Given a free user
        When they buy pro, spend, renew, miss a payment and cancel
        Then balance and status follow each step and the ledger replays
        """
        user_id = str(account.user_id)

        deliver(
            "evt_1",
            "checkout.session.completed",
            checkout_session(user_id=user_id, tier="pro"),
        )
        account.refresh_from_db()
        assert (account.tier, account.balance) == (Tier.PRO, 100000)

        CreditService.deduct(account.id, 40000, "image-generate")

        with patch(
            "billing.reconciler.StripeAdapter.retrieve_subscription",
            return_value=SubscriptionResult.from_stripe(subscription(price_id="price_pro_test")),
        ):
            deliver("evt_2", "invoice.paid", invoice(invoice_id="in_renew_1"))
        account.refresh_from_db()
        assert account.balance == 100000

        deliver("evt_3", "invoice.payment_failed", invoice(invoice_id="in_renew_2"))
        account.refresh_from_db()
        assert account.tier_status == TierStatus.PAST_DUE

        deliver("evt_4", "customer.subscription.deleted", subscription(status="canceled"))
        account.refresh_from_db()
        assert account.tier == Tier.FREE
        assert account.tier_status == TierStatus.CANCELED
        assert account.balance == 1000

        report = CreditService.verify_replay(account.id)
        assert report.consistent

    def test_duplicate_delivery_grants_once(self, account, deliver):
        session = checkout_session(user_id=str(account.user_id), tier="starter")

        first = deliver("evt_dup", "checkout.session.completed", session)
        CreditService.deduct(account.id, 500, "chat")
        rows_before = CreditTransaction.objects.filter(account=account).count()
        second = deliver("evt_dup", "checkout.session.completed", session)

        assert first.pk == second.pk
        assert second.status == WebhookEventStatus.PROCESSED
        account.refresh_from_db()
        assert account.balance == 24500
        assert CreditTransaction.objects.filter(account=account).count() == rows_before
