"""
Django admin configuration for credit models.

Balances are read-only here: every change must produce a ledger row,
so edits go through the API console (credits.views.AdminGrantView) or
CreditService. Ledger rows cannot be added, edited or deleted.
"""

from django.contrib import admin, messages

from credits.models import CreditAccount, CreditTransaction
from credits.services import CreditService


@admin.register(CreditAccount)
class CreditAccountAdmin(admin.ModelAdmin):
    """
    Admin configuration for CreditAccount.

    Provides visibility into balances, tiers and billing references.
    The replay action checks the stored balance against the ledger.
    """

    list_display = [
        "id",
        "user",
        "balance",
        "tier",
        "tier_status",
        "is_admin",
        "period_end",
        "created_at",
    ]
    list_filter = ["tier", "tier_status", "is_admin"]
    search_fields = ["id", "user__email", "billing_customer_ref", "subscription_ref"]
    readonly_fields = [
        "id",
        "user",
        "balance",
        "last_sequence",
        "tier",
        "tier_status",
        "period_end",
        "is_admin",
        "billing_customer_ref",
        "subscription_ref",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]
    actions = ["verify_ledger"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "user", "is_admin"),
            },
        ),
        (
            "Balance",
            {
                "fields": ("balance", "last_sequence"),
            },
        ),
        (
            "Subscription",
            {
                "fields": ("tier", "tier_status", "period_end"),
            },
        ),
        (
            "Stripe",
            {
                "fields": ("billing_customer_ref", "subscription_ref"),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    @admin.action(description="Verify balance against ledger")
    def verify_ledger(self, request, queryset):
        """Replay the ledger of each selected account."""
        mismatched = []
        for account in queryset:
            report = CreditService.verify_replay(account.id)
            if not report.consistent:
                mismatched.append(f"{account.id} (balance {report.balance}, ledger {report.replayed})")

        if mismatched:
            self.message_user(
                request,
                f"Ledger mismatch: {', '.join(mismatched)}",
                level=messages.ERROR,
            )
        else:
            self.message_user(request, f"{queryset.count()} accounts match their ledger.")

    def has_delete_permission(self, request, obj=None) -> bool:
        """Accounts carry ledger history; disable delete."""
        return False

    def has_add_permission(self, request) -> bool:
        """Accounts are opened at registration only."""
        return False


@admin.register(CreditTransaction)
class CreditTransactionAdmin(admin.ModelAdmin):
    """
    Admin configuration for CreditTransaction.

    Ledger rows are immutable. Corrections are new rows written by
    CreditService.adjust.
    """

    list_display = [
        "id",
        "created_at",
        "account",
        "sequence",
        "kind",
        "amount",
        "balance_after",
        "action_tag",
    ]
    list_filter = ["kind", "action_tag", "created_at"]
    search_fields = ["id", "account__id", "account__user__email", "note"]
    readonly_fields = [
        "id",
        "account",
        "sequence",
        "amount",
        "balance_after",
        "kind",
        "action_tag",
        "note",
        "metadata",
        "created_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def has_delete_permission(self, request, obj=None) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_add_permission(self, request) -> bool:
        return False
