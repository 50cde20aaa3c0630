"""
Credits app configuration.

This app owns the credit ledger:
- CreditAccount balances, tiers and billing status
- Append-only CreditTransaction log
- Action cost table and the paid-action gate
"""

from django.apps import AppConfig


class CreditsConfig(AppConfig):
    """Configuration for the credits application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "credits"
    verbose_name = "Credits"
