"""
Billing app configuration.

This app connects Stripe subscriptions to the credit ledger:
- Checkout sessions for paid tiers
- Webhook intake, storage and async processing
- Reconciliation of subscription events into tiers and allowances
"""

from django.apps import AppConfig


class BillingConfig(AppConfig):
    """Configuration for the billing application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "billing"
    verbose_name = "Billing"
