"""
Billing event reconciler.

Applies Stripe subscription lifecycle events to credit accounts. Every
handler is safe to run more than once for the same event:

- Field updates overwrite (tier, status, period end, refs)
- Balance changes are absolute resets to the tier allowance
- Effects that are already in place raise AlreadyReconciled inside the
  lock, which is logged and reported as success

Each handler does its read-decide-write inside one account lock. The
Stripe lookup for invoice.paid happens before the lock is taken so no
network call runs while a row is locked.

Outcomes:
- ServiceResult.success: applied, already applied, or deliberately
  ignored (unknown tier/plan, forbidden status transition)
- ServiceResult.failure: no matching account or unusable payload; the
  webhook event is marked failed and retried later

Usage:
    from billing.reconciler import BillingReconciler

    result = BillingReconciler.apply_checkout_completed(event_id, session)
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.utils import timezone

from core.services import BaseService, ServiceResult

from billing.adapters import StripeAdapter, SubscriptionResult
from billing.exceptions import StripeError, WebhookPayloadError
from credits.entitlements import (
    PAID_TIERS,
    map_billing_status,
    resolve_tier_for_billing_plan,
    transition_status,
    validate_tier,
)
from credits.exceptions import (
    AlreadyReconciled,
    InvalidTierTransition,
    UnknownAccount,
    UnknownTier,
)
from credits.models import Tier, TierStatus, TransactionKind
from credits.services import CreditService
from credits.store import lock_account

if TYPE_CHECKING:
    from collections.abc import Generator

    from credits.models import CreditAccount


_RESET_FIELDS = ("tier", "tier_status", "billing_customer_ref", "subscription_ref", "period_end")


@contextmanager
def _lock_billing_account(
    user_id: str | None,
    customer_ref: str | None,
) -> Generator[CreditAccount, None, None]:
    """Lock the account named by metadata userId, else by Stripe customer."""
    if user_id:
        with lock_account(user_id=user_id) as account:
            yield account
    elif customer_ref:
        with lock_account(billing_customer_ref=customer_ref) as account:
            yield account
    else:
        raise WebhookPayloadError("Event carries neither a userId nor a customer reference")


def _ref(value: Any) -> str | None:
    """Stripe expands some references into objects; reduce them to the id."""
    if isinstance(value, dict):
        return value.get("id")
    return value or None


def _invoice_subscription_id(invoice: dict[str, Any]) -> str | None:
    """Subscription id of an invoice (top-level on older API versions)."""
    subscription_id = _ref(invoice.get("subscription"))
    if subscription_id:
        return subscription_id
    parent = invoice.get("parent") or {}
    details = parent.get("subscription_details") or {}
    return _ref(details.get("subscription"))


def _require_current_subscription(account: CreditAccount, subscription_id: str) -> None:
    """
    Events for a subscription other than the account's current one are
    stale: it was replaced or deleted after the event was sent.
    """
    if account.subscription_ref != subscription_id:
        raise AlreadyReconciled(
            "Event is for a subscription the account no longer holds",
            details={"subscription_ref": subscription_id, "current_subscription_ref": account.subscription_ref},
        )


class BillingReconciler(BaseService):
    """Apply Stripe billing events to credit accounts."""

    @classmethod
    def _period_end(cls):
        return timezone.now() + timedelta(days=settings.CREDIT_SUBSCRIPTION_PERIOD_DAYS)

    @classmethod
    def _run(cls, event_id: str, event_type: str, apply) -> ServiceResult:
        """
        Run ``apply`` and turn expected outcomes into ServiceResults.

        ``apply`` takes no arguments and returns the result data; it may
        raise AlreadyReconciled, InvalidTierTransition, UnknownAccount or
        WebhookPayloadError.
        """
        logger = cls.get_logger()
        log_context = {"stripe_event_id": event_id, "event_type": event_type}

        try:
            data = apply()
        except AlreadyReconciled as e:
            logger.info(
                f"{event_type}: already reconciled",
                extra={**log_context, "reason": e.message},
            )
            return ServiceResult.success({"already_reconciled": True})
        except InvalidTierTransition as e:
            logger.warning(
                f"{event_type}: tier status transition rejected, skipping",
                extra={**log_context, **e.details},
            )
            return ServiceResult.success({"skipped": e.error_code})
        except (UnknownAccount, WebhookPayloadError) as e:
            logger.warning(
                f"{event_type}: {e.message}",
                extra={**log_context, **e.details},
            )
            return ServiceResult.from_exception(e)

        logger.info(f"{event_type}: reconciled", extra={**log_context, **(data or {})})
        return ServiceResult.success(data)

    # =========================================================================
    # Checkout
    # =========================================================================

    @classmethod
    def apply_checkout_completed(cls, event_id: str, session: dict[str, Any]) -> ServiceResult:
        """
        First purchase of a paid tier.

        Activates the account, links the Stripe customer and subscription,
        resets the balance to the tier allowance and opens a new period.
        A replay for the same subscription and tier is a no-op.
        """
        metadata = session.get("metadata") or {}
        customer_ref = _ref(session.get("customer"))
        subscription_ref = _ref(session.get("subscription"))

        try:
            tier = validate_tier(metadata.get("tier") or "")
        except UnknownTier:
            cls.get_logger().warning(
                "checkout.session.completed: unknown tier in metadata, ignoring",
                extra={"stripe_event_id": event_id, "tier": metadata.get("tier")},
            )
            return ServiceResult.success(None)
        if tier not in PAID_TIERS:
            cls.get_logger().warning(
                "checkout.session.completed: checkout for a non-paid tier, ignoring",
                extra={"stripe_event_id": event_id, "tier": tier},
            )
            return ServiceResult.success(None)

        def apply():
            with _lock_billing_account(metadata.get("userId"), customer_ref) as account:
                if (
                    subscription_ref
                    and account.subscription_ref == subscription_ref
                    and account.tier == tier
                    and account.tier_status == TierStatus.ACTIVE
                ):
                    raise AlreadyReconciled(
                        "Subscription already active on this account",
                        details={"subscription_ref": subscription_ref},
                    )

                transition_status(account, TierStatus.ACTIVE)
                account.tier = tier
                account.billing_customer_ref = customer_ref or account.billing_customer_ref
                account.subscription_ref = subscription_ref
                account.period_end = cls._period_end()
                CreditService.reset_locked(
                    account,
                    tier,
                    note=f"Initial {tier} subscription credits",
                    extra_fields=_RESET_FIELDS,
                    metadata={"stripe_event_id": event_id},
                )
                return {"account_id": str(account.id), "tier": tier, "balance": account.balance}

        return cls._run(event_id, "checkout.session.completed", apply)

    # =========================================================================
    # Subscription Lifecycle
    # =========================================================================

    @classmethod
    def apply_subscription_updated(cls, event_id: str, subscription: dict[str, Any]) -> ServiceResult:
        """
        Plan or status change.

        Updates tier, status and period end only. The balance follows on
        the next invoice.paid.
        Ignored unless the subscription is the account's current one.
        """
        result = SubscriptionResult.from_stripe(subscription)
        tier = resolve_tier_for_billing_plan(result.price_id)
        if tier is None:
            cls.get_logger().info(
                "customer.subscription.updated: price does not map to a tier, ignoring",
                extra={"stripe_event_id": event_id, "price_id": result.price_id},
            )
            return ServiceResult.success(None)

        target_status = map_billing_status(result.status)

        def apply():
            with _lock_billing_account(result.metadata.get("userId"), result.customer_id) as account:
                _require_current_subscription(account, result.id)
                if (
                    account.tier == tier
                    and account.tier_status == target_status
                    and account.period_end == result.current_period_end
                ):
                    raise AlreadyReconciled("Tier, status and period already match")

                transition_status(account, target_status)
                account.tier = tier
                account.period_end = result.current_period_end
                account.save(update_fields=["tier", "tier_status", "period_end", "updated_at"])
                return {"account_id": str(account.id), "tier": tier, "tier_status": target_status}

        return cls._run(event_id, "customer.subscription.updated", apply)

    @classmethod
    def apply_subscription_deleted(cls, event_id: str, subscription: dict[str, Any]) -> ServiceResult:
        """
        Subscription ended: back to the free tier and the free allowance.

        A deletion for a subscription other than the account's current one
        is stale (the user already resubscribed) and is ignored.
        """
        result = SubscriptionResult.from_stripe(subscription)

        def apply():
            with _lock_billing_account(result.metadata.get("userId"), result.customer_id) as account:
                if account.subscription_ref is None and account.tier == Tier.FREE:
                    raise AlreadyReconciled("Account already on the free tier")
                if account.subscription_ref and account.subscription_ref != result.id:
                    raise AlreadyReconciled(
                        "Deleted subscription is not the account's current one",
                        details={"subscription_ref": result.id},
                    )

                transition_status(account, TierStatus.CANCELED)
                account.tier = Tier.FREE
                account.subscription_ref = None
                CreditService.reset_locked(
                    account,
                    Tier.FREE,
                    note="Subscription canceled, reset to free allowance",
                    extra_fields=_RESET_FIELDS,
                    metadata={"stripe_event_id": event_id, "subscription_ref": result.id},
                )
                return {"account_id": str(account.id), "balance": account.balance}

        return cls._run(event_id, "customer.subscription.deleted", apply)

    # =========================================================================
    # Invoices
    # =========================================================================

    @classmethod
    def apply_invoice_paid(cls, event_id: str, invoice: dict[str, Any]) -> ServiceResult:
        """
        Renewal paid: reset the balance to the allowance of the current plan.

        Each invoice resets at most once; the invoice id is stored in the
        reset row's metadata.
        Invoices of a replaced or deleted subscription are ignored.

        Raises:
            StripeError: Retryable Stripe failures propagate so the task retries
        """
        invoice_id = invoice.get("id")
        subscription_id = _invoice_subscription_id(invoice)
        if not subscription_id:
            cls.get_logger().info(
                "invoice.paid: invoice has no subscription, ignoring",
                extra={"stripe_event_id": event_id, "invoice_id": invoice_id},
            )
            return ServiceResult.success(None)

        try:
            subscription = StripeAdapter.retrieve_subscription(subscription_id)
        except StripeError as e:
            if e.is_retryable:
                raise
            return cls.handle_exception(e, "invoice.paid: could not retrieve subscription")

        tier = resolve_tier_for_billing_plan(subscription.price_id)
        if tier is None:
            cls.get_logger().info(
                "invoice.paid: price does not map to a tier, ignoring",
                extra={"stripe_event_id": event_id, "price_id": subscription.price_id},
            )
            return ServiceResult.success(None)

        customer_ref = _ref(invoice.get("customer")) or subscription.customer_id

        def apply():
            with _lock_billing_account(subscription.metadata.get("userId"), customer_ref) as account:
                _require_current_subscription(account, subscription.id)
                if invoice_id and account.transactions.filter(
                    kind=TransactionKind.SUBSCRIPTION_CREDIT,
                    metadata__invoice_id=invoice_id,
                ).exists():
                    raise AlreadyReconciled(
                        "Invoice already credited",
                        details={"invoice_id": invoice_id},
                    )

                account.tier = tier
                account.period_end = subscription.current_period_end or cls._period_end()
                CreditService.reset_locked(
                    account,
                    tier,
                    note=f"Monthly {tier} subscription credits refreshed",
                    extra_fields=("tier", "period_end"),
                    metadata={"stripe_event_id": event_id, "invoice_id": invoice_id},
                )
                return {"account_id": str(account.id), "tier": tier, "balance": account.balance}

        return cls._run(event_id, "invoice.paid", apply)

    @classmethod
    def apply_invoice_payment_failed(cls, event_id: str, invoice: dict[str, Any]) -> ServiceResult:
        """Renewal failed: mark past due. The balance is left alone."""
        customer_ref = _ref(invoice.get("customer"))

        def apply():
            with _lock_billing_account(None, customer_ref) as account:
                if not transition_status(account, TierStatus.PAST_DUE):
                    raise AlreadyReconciled("Account already past due")
                account.save(update_fields=["tier_status", "updated_at"])
                return {"account_id": str(account.id), "tier_status": TierStatus.PAST_DUE}

        return cls._run(event_id, "invoice.payment_failed", apply)
