"""Stripe webhook intake (views) and per-event-type dispatch (handlers)."""

from billing.webhooks.handlers import dispatch_webhook, register_handler
from billing.webhooks.views import stripe_webhook

__all__ = [
    "dispatch_webhook",
    "register_handler",
    "stripe_webhook",
]
