"""
Checkout service.

Starts a Stripe Checkout for a paid tier. The Stripe customer is
created lazily on the first checkout and stored on the credit account;
later checkouts reuse it.

Usage:
    from billing.services import CheckoutService

    session = CheckoutService.start_checkout(request.user, "pro")
    return Response({"url": session.url})
"""

from __future__ import annotations

from django.conf import settings

from core.exceptions import ValidationError
from core.services import BaseService

from billing.adapters import (
    CheckoutSessionResult,
    CreateCheckoutSessionParams,
    IdempotencyKeyGenerator,
    StripeAdapter,
)
from billing.exceptions import BillingError
from credits.entitlements import PAID_TIERS, price_for_tier, validate_tier
from credits.models import CreditAccount
from credits.services import CreditService


class CheckoutService(BaseService):
    """Create Stripe customers and checkout sessions for credit accounts."""

    @classmethod
    def ensure_customer(cls, account: CreditAccount) -> str:
        """
        Return the account's Stripe customer id, creating it once.

        The Stripe call is keyed by the account id, so concurrent first
        checkouts get the same customer back, and the column is only
        written while still empty.
        """
        if account.billing_customer_ref:
            return account.billing_customer_ref

        customer = StripeAdapter.create_customer(
            email=account.user.email,
            metadata={"userId": str(account.user_id)},
            idempotency_key=IdempotencyKeyGenerator.generate("create_customer", account.id),
        )
        CreditAccount.objects.filter(
            pk=account.pk,
            billing_customer_ref__isnull=True,
        ).update(billing_customer_ref=customer.id)
        account.refresh_from_db(fields=["billing_customer_ref"])

        cls.get_logger().info(
            "Linked Stripe customer",
            extra={"account_id": str(account.id), "customer_id": account.billing_customer_ref},
        )
        return account.billing_customer_ref

    @classmethod
    def start_checkout(cls, user, tier: str) -> CheckoutSessionResult:
        """
        Create a subscription checkout session for ``tier``.

        Raises:
            ValidationError: Tier is not purchasable
            BillingError: No Stripe price configured for the tier
            StripeError: Stripe rejected or could not serve the request
        """
        tier = validate_tier(tier)
        if tier not in PAID_TIERS:
            raise ValidationError(
                f"Tier '{tier}' cannot be purchased",
                error_code="INVALID_TIER",
                details={"tier": tier},
            )

        price_id = price_for_tier(tier)
        if not price_id:
            raise BillingError(
                "Stripe price not configured for this tier",
                error_code="PRICE_NOT_CONFIGURED",
                details={"tier": tier},
            )

        account = CreditService.get_account_for_user(user)
        customer_id = cls.ensure_customer(account)
        metadata = {"userId": str(user.pk), "tier": tier}

        session = StripeAdapter.create_checkout_session(
            CreateCheckoutSessionParams(
                customer_id=customer_id,
                price_id=price_id,
                success_url=settings.STRIPE_CHECKOUT_SUCCESS_URL,
                cancel_url=settings.STRIPE_CHECKOUT_CANCEL_URL,
                metadata=metadata,
                idempotency_key=IdempotencyKeyGenerator.generate(
                    f"checkout:{tier}",
                    account.id,
                    attempt=account.last_sequence,
                ),
            )
        )

        cls.get_logger().info(
            "Checkout session created",
            extra={"account_id": str(account.id), "tier": tier, "session_id": session.id},
        )
        return session
