"""
Celery tasks for Stripe webhook processing and upkeep.

process_webhook_event is queued by the webhook view. The other three
run on django-celery-beat schedules created in
billing/migrations/0002_add_webhook_schedules.py.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from billing.models import WebhookEvent

logger = logging.getLogger(__name__)


STUCK_AFTER = timedelta(minutes=30)
RETRY_BATCH_SIZE = 100


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": settings.BILLING_WEBHOOK_MAX_RETRIES},
    acks_late=True,
)
def process_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Apply one stored webhook event to the credit accounts.

    The handler runs inside a transaction. A ServiceResult failure
    marks the event failed and returns ``handler_failed``; the beat
    sweep retries it later. An exception also marks it failed but is
    re-raised so Celery retries with backoff.
    """
    from billing.webhooks.handlers import dispatch_webhook

    outcome = {"webhook_event_id": str(webhook_event_id)}
    webhook_event = WebhookEvent.objects.filter(pk=webhook_event_id).first()
    if webhook_event is None:
        logger.error("WebhookEvent not found", extra=outcome)
        return {"status": "not_found", **outcome}

    log_extra = {**outcome, "stripe_event_id": webhook_event.stripe_event_id}
    if webhook_event.is_processed:
        logger.info("WebhookEvent already processed, skipping", extra=log_extra)
        return {"status": "already_processed", **outcome}

    webhook_event.mark_processing()
    logger.info(
        f"Dispatching {webhook_event.event_type} (attempt {webhook_event.retry_count})",
        extra=log_extra,
    )

    try:
        with transaction.atomic():
            result = dispatch_webhook(webhook_event)
    except Exception as e:
        webhook_event.mark_failed(f"{type(e).__name__}: {e}")
        logger.exception("Webhook handler raised", extra=log_extra)
        raise

    if not result.success:
        error = result.error or "Handler returned failure"
        webhook_event.mark_failed(error)
        logger.warning(
            f"Webhook handler failed: {error}",
            extra={**log_extra, "error_code": result.error_code},
        )
        return {"status": "handler_failed", "error": error, **outcome}

    webhook_event.mark_processed()
    logger.info("Webhook processed", extra=log_extra)
    return {"status": "processed", "stripe_event_id": webhook_event.stripe_event_id, **outcome}


@shared_task
def retry_failed_webhooks() -> dict:
    """Queue failed events that still have attempts left. Every 5 minutes."""
    queued = 0
    for webhook_event in WebhookEvent.objects.retryable()[:RETRY_BATCH_SIZE]:
        try:
            process_webhook_event.delay(str(webhook_event.id))
        except Exception:
            logger.exception(
                "Could not queue webhook retry",
                extra={"webhook_event_id": str(webhook_event.id)},
            )
        else:
            queued += 1

    logger.info(f"Queued {queued} failed webhooks for retry", extra={"queued_count": queued})
    return {"queued_count": queued}


@shared_task
def cleanup_stuck_webhooks() -> dict:
    """
    Fail events a dead worker left in processing so the retry sweep
    picks them up. Every 15 minutes.
    """
    reset = 0
    for webhook_event in WebhookEvent.objects.stuck(timezone.now() - STUCK_AFTER):
        logger.warning(
            "Resetting stuck webhook",
            extra={
                "webhook_event_id": str(webhook_event.id),
                "stuck_since": webhook_event.updated_at.isoformat(),
            },
        )
        webhook_event.mark_failed("Processing timed out")
        reset += 1

    return {"reset_count": reset}


@shared_task
def cleanup_old_webhooks(days: int = 90) -> dict:
    """Delete processed events older than ``days``; failed ones are kept. Daily."""
    cutoff = timezone.now() - timedelta(days=days)
    deleted, _ = WebhookEvent.objects.processed_before(cutoff).delete()
    if deleted:
        logger.info(
            f"Deleted {deleted} old webhook events",
            extra={"cutoff_date": cutoff.isoformat()},
        )
    return {"deleted_count": deleted}
