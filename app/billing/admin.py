from django.contrib import admin

from billing.models import WebhookEvent, WebhookEventStatus


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Read-only view of received Stripe events.

    Rows can't be added or deleted here. Failed events can be handed
    back to the worker with the requeue action.
    """

    list_display = ["stripe_event_id", "event_type", "status", "retry_count", "processed_at", "created_at"]
    list_filter = ["status", "event_type"]
    search_fields = ["stripe_event_id", "event_type"]
    date_hierarchy = "created_at"
    actions = ["requeue"]
    fields = readonly_fields = [
        "id",
        "stripe_event_id",
        "event_type",
        "status",
        "retry_count",
        "processed_at",
        "error_message",
        "payload",
        "created_at",
        "updated_at",
    ]

    @admin.action(description="Requeue selected failed events")
    def requeue(self, request, queryset):
        from billing.tasks import process_webhook_event

        ids = [str(pk) for pk in queryset.filter(status=WebhookEventStatus.FAILED).values_list("pk", flat=True)]
        for webhook_event_id in ids:
            process_webhook_event.delay(webhook_event_id)
        self.message_user(request, f"Queued {len(ids)} webhook events.")

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False
