"""
Tests for the webhook handler registry and dispatch.
"""

from unittest.mock import patch

from core.services import ServiceResult

from billing.tests.factories import WebhookEventFactory, checkout_session, invoice, subscription
from billing.webhooks.handlers import WEBHOOK_HANDLERS, dispatch_webhook, register_handler
from credits.models import Tier


class TestRegistry:
    def test_lifecycle_events_are_registered(self):
        assert set(WEBHOOK_HANDLERS) >= {
            "checkout.session.completed",
            "customer.subscription.updated",
            "customer.subscription.deleted",
            "invoice.paid",
            "invoice.payment_failed",
        }

    def test_register_handler_adds_to_registry(self, db):
        @register_handler("test.custom_event")
        def handle_custom(webhook_event):
            return ServiceResult.success({"handled": webhook_event.stripe_event_id})

        try:
            event = WebhookEventFactory.for_object("test.custom_event", {"id": "obj_1"})
            result = dispatch_webhook(event)
        finally:
            WEBHOOK_HANDLERS.pop("test.custom_event", None)

        assert result.data == {"handled": event.stripe_event_id}


class TestDispatch:
    def test_unknown_event_type_succeeds(self, db):
        event = WebhookEventFactory.for_object("charge.refunded", {"id": "ch_1"})

        result = dispatch_webhook(event)

        assert result.success
        assert result.data is None

    def test_payload_without_object_fails(self, db):
        event = WebhookEventFactory(
            event_type="invoice.paid",
            payload={"id": "evt_broken", "type": "invoice.paid", "data": {}},
        )

        result = dispatch_webhook(event)

        assert not result.success
        assert result.error_code == "INVALID_WEBHOOK_PAYLOAD"

    def test_checkout_completed_reaches_reconciler(self, account):
        event = WebhookEventFactory.for_object(
            "checkout.session.completed",
            checkout_session(user_id=str(account.user_id), tier="starter"),
        )

        result = dispatch_webhook(event)

        assert result.success
        account.refresh_from_db()
        assert account.tier == Tier.STARTER
        assert account.balance == 25000

    def test_handlers_pass_event_id_and_object(self, db):
        sub = subscription()
        event = WebhookEventFactory.for_object("customer.subscription.deleted", sub)

        with patch(
            "billing.webhooks.handlers.BillingReconciler.apply_subscription_deleted",
            return_value=ServiceResult.success(None),
        ) as mock_apply:
            dispatch_webhook(event)

        mock_apply.assert_called_once_with(event.stripe_event_id, sub)

    def test_payment_failed_reaches_reconciler(self, db):
        event = WebhookEventFactory.for_object("invoice.payment_failed", invoice(customer="cus_x"))

        with patch(
            "billing.webhooks.handlers.BillingReconciler.apply_invoice_payment_failed",
            return_value=ServiceResult.success(None),
        ) as mock_apply:
            dispatch_webhook(event)

        mock_apply.assert_called_once()
