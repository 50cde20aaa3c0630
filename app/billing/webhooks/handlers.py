"""
Stripe event type -> handler registry.

The billing lifecycle events all have the same shape: pull
``data.object`` out of the stored payload and pass it, with the Stripe
event id, to a BillingReconciler method. Anything more particular can
be added with ``@register_handler("some.event")``.
"""

from __future__ import annotations

import logging
from typing import Callable

from core.services import ServiceResult

from billing.models import WebhookEvent
from billing.reconciler import BillingReconciler

logger = logging.getLogger(__name__)

Handler = Callable[[WebhookEvent], ServiceResult]

WEBHOOK_HANDLERS: dict[str, Handler] = {}

# event type -> BillingReconciler method
RECONCILED_EVENTS = {
    "checkout.session.completed": "apply_checkout_completed",
    "customer.subscription.updated": "apply_subscription_updated",
    "customer.subscription.deleted": "apply_subscription_deleted",
    "invoice.paid": "apply_invoice_paid",
    "invoice.payment_failed": "apply_invoice_payment_failed",
}


def register_handler(event_type: str) -> Callable[[Handler], Handler]:
    def decorator(func: Handler) -> Handler:
        WEBHOOK_HANDLERS[event_type] = func
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Run the handler for the event's type.

    Types without a handler succeed with no data so they are marked
    processed and never retried.
    """
    log_extra = {"stripe_event_id": webhook_event.stripe_event_id, "event_type": webhook_event.event_type}
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)
    if handler is None:
        logger.info("Ignoring webhook type without handler", extra=log_extra)
        return ServiceResult.success(None)

    logger.debug("Dispatching webhook", extra=log_extra)
    return handler(webhook_event)


def _reconciling_handler(method_name: str) -> Handler:
    def handle(webhook_event: WebhookEvent) -> ServiceResult:
        obj = webhook_event.get_object()
        if not obj.get("id"):
            logger.error(
                "Webhook payload has no data.object",
                extra={"stripe_event_id": webhook_event.stripe_event_id, "event_type": webhook_event.event_type},
            )
            return ServiceResult.failure(
                "Could not extract event object from webhook",
                error_code="INVALID_WEBHOOK_PAYLOAD",
            )
        return getattr(BillingReconciler, method_name)(webhook_event.stripe_event_id, obj)

    handle.__name__ = f"handle_{method_name.removeprefix('apply_')}"
    return handle


for _event_type, _method_name in RECONCILED_EVENTS.items():
    register_handler(_event_type)(_reconciling_handler(_method_name))
