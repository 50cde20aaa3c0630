"""
Billing errors.

Stripe SDK exceptions never leave billing.adapters; StripeAdapter maps
them onto the StripeError subclasses below. ``is_retryable`` decides
whether a webhook handler re-raises (Celery backs off and retries) or
fails the event for good.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError

if TYPE_CHECKING:
    from typing import Any


class BillingError(BaseApplicationError):
    default_error_code: str = "BILLING_ERROR"


class WebhookPayloadError(BillingError):
    """The event lacks a field its handler needs. Redelivery can't fix that."""

    default_error_code: str = "INVALID_WEBHOOK_PAYLOAD"


class StripeError(BillingError):
    """
    A failed Stripe call.

    ``stripe_code`` is Stripe's own error code and ``decline_code`` is
    set for card declines; both are echoed into ``details``.
    """

    default_error_code: str = "STRIPE_ERROR"
    status_code: int = 502

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        decline_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        codes = {"stripe_code": stripe_code, "decline_code": decline_code}
        super().__init__(
            message,
            error_code=error_code,
            details={**(details or {}), **{k: v for k, v in codes.items() if v}},
        )
        self.stripe_code = stripe_code
        self.decline_code = decline_code


class StripeCardDeclinedError(StripeError):
    default_error_code: str = "CARD_DECLINED"
    status_code: int = 402


class StripeInvalidRequestError(StripeError):
    """Bad parameters, unknown ids, a rejected API key or a forged webhook signature."""

    default_error_code: str = "INVALID_STRIPE_REQUEST"
    status_code: int = 400


class StripeRateLimitError(StripeError):
    default_error_code: str = "STRIPE_RATE_LIMITED"
    is_retryable: bool = True


class StripeAPIUnavailableError(StripeError):
    """Network failure or a 5xx from Stripe."""

    default_error_code: str = "STRIPE_UNAVAILABLE"
    status_code: int = 503
    is_retryable: bool = True


class StripeTimeoutError(StripeError):
    """
    No answer in time. Stripe may still have done the work, so a retry
    must send the same idempotency key.
    """

    default_error_code: str = "STRIPE_TIMEOUT"
    status_code: int = 504
    is_retryable: bool = True
