"""
Stripe webhook receiver.

Verifies the signature, stores the event once per Stripe event id and
queues process_webhook_event. Billing work never runs in the request,
so Stripe gets its 2xx well inside its 20 second timeout.
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from billing.adapters import StripeAdapter
from billing.exceptions import StripeInvalidRequestError
from billing.models import WebhookEvent

logger = logging.getLogger(__name__)


def _queue(webhook_event: WebhookEvent) -> None:
    from billing.tasks import process_webhook_event

    try:
        process_webhook_event.delay(str(webhook_event.id))
    except Exception:
        # Left pending or failed: Stripe redelivers and retry_failed_webhooks sweeps
        logger.exception(
            "Could not queue webhook",
            extra={"stripe_event_id": webhook_event.stripe_event_id},
        )


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> HttpResponse:
    """
    Accept a Stripe event.

    400 for a missing or bad signature or an event without id/type.
    Everything else is 200, including redeliveries; an already
    processed event is not queued again.
    """
    signature = request.headers.get("Stripe-Signature")
    if not signature:
        logger.warning("Stripe webhook without signature header")
        return HttpResponse("Missing signature", status=400)

    try:
        event = StripeAdapter.verify_webhook_signature(request.body, signature)
    except StripeInvalidRequestError as e:
        logger.warning("Stripe webhook signature rejected", extra={"error": str(e)})
        return HttpResponse("Invalid signature", status=400)

    event_id, event_type = event.get("id"), event.get("type")
    if not (event_id and event_type):
        logger.warning("Stripe webhook without id or type")
        return HttpResponse("Invalid event", status=400)

    webhook_event, created = WebhookEvent.objects.get_or_create(
        stripe_event_id=event_id,
        defaults={"event_type": event_type, "payload": event},
    )
    log_extra = {"stripe_event_id": event_id, "event_type": event_type, "first_delivery": created}

    if webhook_event.is_processed:
        logger.info("Duplicate delivery of processed webhook", extra=log_extra)
        return HttpResponse("Already processed", status=200)

    logger.info(f"Queueing Stripe webhook {event_type}", extra=log_extra)
    _queue(webhook_event)
    return HttpResponse("Accepted", status=200)
