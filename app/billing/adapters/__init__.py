"""Stripe client wrapper used by the billing app."""

from billing.adapters.stripe_adapter import (
    CheckoutSessionResult,
    CreateCheckoutSessionParams,
    CustomerResult,
    IdempotencyKeyGenerator,
    StripeAdapter,
    SubscriptionResult,
)

__all__ = [
    "CheckoutSessionResult",
    "CreateCheckoutSessionParams",
    "CustomerResult",
    "IdempotencyKeyGenerator",
    "StripeAdapter",
    "SubscriptionResult",
]
