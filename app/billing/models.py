"""
Stored Stripe webhook deliveries.

One row per Stripe event id, so a redelivered event never creates a
second row. Whether the event's billing effect is applied only once is
the reconciler's concern, not this table's.
"""

from __future__ import annotations

from datetime import datetime

from django.conf import settings
from django.db import models
from django.utils import timezone

from core.managers import BaseQuerySet
from core.models import BaseModel, UUIDPrimaryKeyMixin


class WebhookEventStatus(models.TextChoices):
    # pending -> processing -> processed | failed; failed goes back to processing on retry
    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


class WebhookEventQuerySet(BaseQuerySet):
    """Selections used by the maintenance tasks in billing.tasks."""

    def retryable(self) -> WebhookEventQuerySet:
        """Failed events below BILLING_WEBHOOK_MAX_RETRIES, oldest first."""
        return self.filter(
            status=WebhookEventStatus.FAILED,
            retry_count__lt=settings.BILLING_WEBHOOK_MAX_RETRIES,
        ).order_by("created_at")

    def stuck(self, idle_since: datetime) -> WebhookEventQuerySet:
        """Events left in processing with no save since ``idle_since``."""
        return self.filter(status=WebhookEventStatus.PROCESSING, updated_at__lt=idle_since)

    def processed_before(self, cutoff: datetime) -> WebhookEventQuerySet:
        return self.filter(status=WebhookEventStatus.PROCESSED, processed_at__lt=cutoff)


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    A verified Stripe event and where it is in processing.

    ``retry_count`` counts attempts, not failures: each call to
    ``mark_processing`` bumps it. The ``mark_*`` helpers save only the
    fields they touch.
    """

    stripe_event_id = models.CharField(max_length=255, unique=True)
    event_type = models.CharField(max_length=100, db_index=True)
    payload = models.JSONField(help_text="Verified event body as sent by Stripe")

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
    )
    processed_at = models.DateTimeField(null=True, blank=True)
    error_message = models.TextField(null=True, blank=True)
    retry_count = models.PositiveSmallIntegerField(default=0, help_text="Processing attempts so far")

    objects = WebhookEventQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="billing_web_status_4c2e1a_idx"),
            models.Index(fields=["event_type", "created_at"], name="billing_web_event_t_9a7f3b_idx"),
            models.Index(fields=["status", "retry_count"], name="billing_web_status_e5d8c6_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.event_type} {self.stripe_event_id}"

    @property
    def is_processed(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSED

    def _set_status(self, status: str, **fields) -> None:
        self.status = status
        for name, value in fields.items():
            setattr(self, name, value)
        self.save(update_fields=["status", *fields, "updated_at"])

    def mark_processing(self) -> None:
        self._set_status(WebhookEventStatus.PROCESSING, retry_count=self.retry_count + 1)

    def mark_processed(self) -> None:
        self._set_status(WebhookEventStatus.PROCESSED, processed_at=timezone.now(), error_message=None)

    def mark_failed(self, error_message: str) -> None:
        self._set_status(WebhookEventStatus.FAILED, error_message=error_message)

    def get_object(self) -> dict:
        """``data.object`` from the payload; ``{}`` when the payload is not shaped like an event."""
        data = self.payload.get("data") if isinstance(self.payload, dict) else None
        obj = data.get("object") if isinstance(data, dict) else None
        return obj if isinstance(obj, dict) else {}
