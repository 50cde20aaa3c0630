"""
Stripe API adapter.

Every Stripe call in the project goes through StripeAdapter. Each call
is timed and logged, and SDK exceptions are mapped onto
billing.exceptions. Create calls always carry an idempotency key.

Settings: STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET,
STRIPE_API_TIMEOUT_SECONDS (default 10).
"""

from __future__ import annotations

import hashlib
import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_timezone
from typing import TYPE_CHECKING, Any

import stripe
from django.conf import settings

from billing.exceptions import (
    StripeAPIUnavailableError,
    StripeCardDeclinedError,
    StripeError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
)

if TYPE_CHECKING:
    from collections.abc import Iterator


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class CreateCheckoutSessionParams:
    """
    Arguments for a subscription-mode Checkout Session.

    ``metadata`` must carry ``userId`` and ``tier``; it is copied onto the
    session and onto the subscription Stripe creates from it.
    """

    customer_id: str
    price_id: str
    success_url: str
    cancel_url: str
    idempotency_key: str
    metadata: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name in ("price_id", "idempotency_key"):
            if not getattr(self, name):
                raise ValueError(f"{name} is required")


@dataclass
class CustomerResult:
    id: str
    email: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class CheckoutSessionResult:
    id: str
    url: str | None
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class SubscriptionResult:
    """The parts of a Stripe subscription the reconciler reads."""

    id: str
    status: str
    customer_id: str | None = None
    price_id: str | None = None
    current_period_end: datetime | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_stripe(cls, data: dict[str, Any]) -> SubscriptionResult:
        """
        Read an API response or webhook object.

        Price and period come from the first item. Recent API versions
        only put current_period_end on items, older ones on the
        subscription; the subscription's value is preferred.
        """
        items = (data.get("items") or {}).get("data") or [{}]
        item = items[0]
        price = item.get("price")
        customer = data.get("customer")
        period_end = data.get("current_period_end") or item.get("current_period_end")

        return cls(
            id=data["id"],
            status=data.get("status", ""),
            customer_id=customer.get("id") if isinstance(customer, dict) else customer,
            price_id=price.get("id") if isinstance(price, dict) else price,
            current_period_end=datetime.fromtimestamp(period_end, tz=dt_timezone.utc) if period_end else None,
            metadata=dict(data.get("metadata") or {}),
            raw_response=data,
        )


class IdempotencyKeyGenerator:
    """
    Deterministic Stripe idempotency keys.

    ``{operation}:{entity_id}:{attempt}:{hash}``, where the hash is the
    first 8 hex digits of a SHA-256 salted with SECRET_KEY. Bump
    ``attempt`` to make Stripe treat a request as new.
    """

    @staticmethod
    def generate(operation: str, entity_id: uuid.UUID | str, attempt: int = 1) -> str:
        prefix = f"{operation}:{entity_id}:{attempt}"
        digest = hashlib.sha256(f"{prefix}:{settings.SECRET_KEY}".encode()).hexdigest()
        return f"{prefix}:{digest[:8]}"


# =============================================================================
# Error translation
# =============================================================================


def _translate(error: Exception) -> StripeError:
    if isinstance(error, stripe.CardError):
        return StripeCardDeclinedError(
            str(error.user_message or error),
            stripe_code=error.code,
            decline_code=getattr(error, "decline_code", None),
        )
    if isinstance(error, stripe.InvalidRequestError):
        return StripeInvalidRequestError(str(error), stripe_code=error.code)
    if isinstance(error, stripe.AuthenticationError):
        return StripeInvalidRequestError("Stripe authentication failed", stripe_code="authentication_error")
    if isinstance(error, stripe.RateLimitError):
        return StripeRateLimitError("Stripe rate limit exceeded. Please retry.", stripe_code="rate_limit")
    if isinstance(error, stripe.APIConnectionError):
        if "timed out" in str(error).lower():
            return StripeTimeoutError("Stripe request timed out. Please retry.", stripe_code="timeout")
        return StripeAPIUnavailableError(
            "Could not connect to Stripe. Please retry.", stripe_code="api_connection_error"
        )
    if isinstance(error, stripe.APIError):
        return StripeAPIUnavailableError("Stripe service error. Please retry.", stripe_code="api_error")
    return StripeAPIUnavailableError(f"Unexpected Stripe error: {error}", stripe_code="unknown_error")


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """Stateless; safe to call from web workers and Celery workers alike."""

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def _call(cls, operation: str, level: int = logging.INFO, **context: Any) -> Iterator[dict[str, Any]]:
        """
        Configure the client, then time and log the enclosed SDK call.

        The yielded dict is merged into the completion log line. Any
        exception is re-raised as the matching StripeError.
        """
        stripe.api_key = settings.STRIPE_SECRET_KEY
        stripe.default_http_client = stripe.RequestsClient(
            timeout=getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        )
        logger = cls.get_logger()
        extra = {"operation": operation, **context}
        outcome: dict[str, Any] = {}
        started = time.monotonic()
        try:
            yield outcome
        except Exception as e:
            translated = _translate(e)
            extra["duration_ms"] = (time.monotonic() - started) * 1000
            if translated.is_retryable:
                logger.warning(f"Stripe {operation} failed, retryable", extra=extra, exc_info=True)
            elif isinstance(e, stripe.AuthenticationError):
                logger.critical("Stripe rejected the API key", extra=extra)
            else:
                logger.error(
                    f"Stripe {operation} rejected", extra={**extra, "stripe_code": translated.stripe_code}
                )
            raise translated from e
        logger.log(
            level,
            f"Stripe {operation} completed",
            extra={**extra, **outcome, "duration_ms": (time.monotonic() - started) * 1000},
        )

    @classmethod
    def create_customer(
        cls,
        email: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> CustomerResult:
        with cls._call("create_customer", idempotency_key=idempotency_key) as outcome:
            customer = stripe.Customer.create(
                email=email,
                metadata=metadata or {},
                idempotency_key=idempotency_key,
            )
            outcome["customer_id"] = customer.id
        return CustomerResult(id=customer.id, email=customer.email, metadata=dict(customer.metadata or {}))

    @classmethod
    def create_checkout_session(cls, params: CreateCheckoutSessionParams) -> CheckoutSessionResult:
        """
        Subscription-mode checkout for one price.

        The metadata goes onto the subscription too, so subscription
        events can be traced back to the user.
        """
        with cls._call(
            "create_checkout_session",
            customer_id=params.customer_id,
            price_id=params.price_id,
            idempotency_key=params.idempotency_key,
        ) as outcome:
            session = stripe.checkout.Session.create(
                mode="subscription",
                customer=params.customer_id,
                line_items=[{"price": params.price_id, "quantity": 1}],
                success_url=params.success_url,
                cancel_url=params.cancel_url,
                metadata=params.metadata,
                subscription_data={"metadata": params.metadata},
                idempotency_key=params.idempotency_key,
            )
            outcome["session_id"] = session.id
        return CheckoutSessionResult(id=session.id, url=session.url, raw_response=session.to_dict())

    @classmethod
    def retrieve_subscription(cls, subscription_id: str) -> SubscriptionResult:
        with cls._call("retrieve_subscription", logging.DEBUG, subscription_id=subscription_id) as outcome:
            subscription = stripe.Subscription.retrieve(subscription_id)
            outcome["status"] = subscription.status
        return SubscriptionResult.from_stripe(subscription.to_dict())

    @classmethod
    def verify_webhook_signature(cls, payload: bytes, signature: str) -> dict[str, Any]:
        """
        Check the Stripe-Signature header against STRIPE_WEBHOOK_SECRET
        and return the parsed event.

        Raises:
            StripeInvalidRequestError: Bad signature or unparseable body
        """
        try:
            event = stripe.Webhook.construct_event(payload, signature, settings.STRIPE_WEBHOOK_SECRET)
        except stripe.SignatureVerificationError as e:
            raise StripeInvalidRequestError(
                "Invalid webhook signature",
                stripe_code="signature_verification_failed",
                details={"error": str(e)},
            ) from e
        except ValueError as e:
            raise StripeInvalidRequestError(
                "Webhook body is not valid JSON",
                stripe_code="invalid_payload",
            ) from e
        return event.to_dict()
