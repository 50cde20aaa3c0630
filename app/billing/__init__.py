"""
Billing app for Stripe integration.

This app handles:
- Stripe customer creation and checkout sessions
- Webhook event intake and idempotent processing
- Tier, status and allowance reconciliation

Related apps:
    - credits: CreditAccount balances and the allowance table

Usage:
    from billing.services import CheckoutService
    from billing.tasks import process_webhook_event
"""
