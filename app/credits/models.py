"""
Credit ledger models.

- CreditAccount: one per user; holds the spendable balance, the
  subscription tier and its billing status
- CreditTransaction: append-only log, one row per balance-affecting event

The balance column is the source of truth for gating; the transaction
log is the audit trail. For every account the sum of transaction
amounts equals the balance, resets included (a reset is logged as the
delta from the previous balance).

Usage:
    from credits.models import CreditAccount, Tier, TransactionKind

    account = CreditAccount.objects.get(user=request.user)
    account.transactions.order_by("sequence")
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import Q

from django_fsm import FSMField, transition

from core.managers import AppendOnlyManager, ImmutableRecordError
from core.models import BaseModel, UUIDPrimaryKeyMixin


class Tier(models.TextChoices):
    """
    Subscription tiers.

    Each tier maps to a monthly credit allowance in
    credits.entitlements.TIER_ALLOWANCES.
    """

    FREE = "free", "Free"
    STARTER = "starter", "Starter"
    PRO = "pro", "Pro"
    BUSINESS = "business", "Business"


class TierStatus(models.TextChoices):
    """
    Billing status of the account's subscription.

    State Flow:
        ACTIVE <-> PAST_DUE (payment failed / recovered)
        ACTIVE/PAST_DUE/INACTIVE -> CANCELED (subscription deleted)
        ACTIVE/PAST_DUE -> INACTIVE (incomplete, unpaid, paused)
        CANCELED/INACTIVE -> ACTIVE (new checkout)
    """

    ACTIVE = "active", "Active"
    PAST_DUE = "past_due", "Past Due"
    CANCELED = "canceled", "Canceled"
    INACTIVE = "inactive", "Inactive"


class TransactionKind(models.TextChoices):
    """
    Closed set of ledger row kinds.

    Values:
        DEDUCTION: Paid action charge (negative amount)
        ADMIN_USAGE: Paid action by an admin, logged but not charged (zero)
        BONUS: Manual grant or positive admin adjustment
        REFUND: Credits returned after a failed or disputed action
        PURCHASE: One-off credit pack purchase
        SUBSCRIPTION_CREDIT: Tier allowance reset (delta to the allowance)
    """

    DEDUCTION = "deduction", "Deduction"
    ADMIN_USAGE = "admin_usage", "Admin Usage"
    BONUS = "bonus", "Bonus"
    REFUND = "refund", "Refund"
    PURCHASE = "purchase", "Purchase"
    SUBSCRIPTION_CREDIT = "subscription_credit", "Subscription Credit"


GRANT_KINDS = frozenset(
    {
        TransactionKind.BONUS,
        TransactionKind.REFUND,
        TransactionKind.PURCHASE,
        TransactionKind.SUBSCRIPTION_CREDIT,
    }
)


class CreditAccount(UUIDPrimaryKeyMixin, BaseModel):
    """
    Credit-bearing account tied to one user.

    Balance, tier and tier_status change only through
    credits.services.CreditService, which takes a row lock for every
    write. tier_status is a django-fsm field; its transitions encode
    which billing status changes are legal.

    Fields:
        user: Owning user
        balance: Spendable credits, never negative
        tier: Subscription tier
        tier_status: Billing status (FSM managed)
        period_end: When the current allowance period ends
        is_admin: Admins bypass balance enforcement
        billing_customer_ref: Stripe Customer ID, created lazily at most once
        subscription_ref: Stripe Subscription ID of the current subscription
        last_sequence: Sequence number of the latest ledger row
    """

    # ==========================================================================
    # Ownership
    # ==========================================================================

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="credit_account",
        help_text="User that owns this credit account",
    )

    # ==========================================================================
    # Balance
    # ==========================================================================

    balance = models.BigIntegerField(
        default=0,
        help_text="Spendable credits (never negative)",
    )

    last_sequence = models.PositiveBigIntegerField(
        default=0,
        help_text="Sequence number of the most recent ledger row for this account",
    )

    # ==========================================================================
    # Entitlement
    # ==========================================================================

    tier = models.CharField(
        max_length=20,
        choices=Tier.choices,
        default=Tier.FREE,
        db_index=True,
        help_text="Subscription tier determining the monthly allowance",
    )

    tier_status = FSMField(
        default=TierStatus.ACTIVE,
        choices=TierStatus.choices,
        db_index=True,
        protected=True,  # Only FSM transitions may change it
        help_text="Billing status of the subscription (managed by FSM)",
    )

    period_end = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the current billing period's allowance renews",
    )

    is_admin = models.BooleanField(
        default=False,
        help_text="Admins are never blocked by balance checks",
    )

    # ==========================================================================
    # Billing Provider References
    # ==========================================================================

    billing_customer_ref = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe Customer ID (cus_xxx)",
    )

    subscription_ref = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe Subscription ID (sub_xxx)",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Credit Account"
        verbose_name_plural = "Credit Accounts"
        indexes = [
            models.Index(fields=["tier", "tier_status"], name="credits_cre_tier_6b1f0e_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(balance__gte=0),
                name="credit_account_balance_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"CreditAccount({self.user_id}, {self.tier}/{self.tier_status}, {self.balance})"

    def refresh_from_db(self, using=None, fields=None, from_queryset=None):
        """
        Reload from the database.

        django-fsm refuses to overwrite a protected field that is already
        loaded, so tier_status is dropped from the instance first and
        reloaded like a deferred field.
        """
        if fields is None:
            self._prefetched_objects_cache = {}
            deferred = self.get_deferred_fields()
            fields = [f.attname for f in self._meta.concrete_fields if f.attname not in deferred]
        if "tier_status" in fields:
            self.__dict__.pop("tier_status", None)
        super().refresh_from_db(using=using, fields=fields, from_queryset=from_queryset)

    # ==========================================================================
    # Tier Status Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=tier_status,
        source=[
            TierStatus.ACTIVE,
            TierStatus.PAST_DUE,
            TierStatus.CANCELED,
            TierStatus.INACTIVE,
        ],
        target=TierStatus.ACTIVE,
    )
    def activate(self):
        """Checkout completed or subscription back in good standing."""

    @transition(
        field=tier_status,
        source=[TierStatus.ACTIVE, TierStatus.PAST_DUE],
        target=TierStatus.PAST_DUE,
    )
    def mark_past_due(self):
        """Renewal payment failed; the provider keeps retrying."""

    @transition(
        field=tier_status,
        source=[
            TierStatus.ACTIVE,
            TierStatus.PAST_DUE,
            TierStatus.CANCELED,
            TierStatus.INACTIVE,
        ],
        target=TierStatus.CANCELED,
    )
    def cancel(self):
        """Subscription ended."""

    @transition(
        field=tier_status,
        source=[TierStatus.ACTIVE, TierStatus.PAST_DUE, TierStatus.INACTIVE],
        target=TierStatus.INACTIVE,
    )
    def deactivate(self):
        """Subscription exists but is not collectable (incomplete, unpaid, paused)."""


class CreditTransaction(UUIDPrimaryKeyMixin, models.Model):
    """
    One append-only ledger row.

    Rows are never edited or deleted; corrections are new compensating
    rows. ``sequence`` is gapless per account and assigned under the
    account lock, so replaying by sequence reproduces balance_after.

    Fields:
        account: Account the row belongs to
        sequence: Per-account position in the log (1-based)
        amount: Signed change (negative deduction, zero admin usage)
        balance_after: Account balance right after this row
        kind: TransactionKind
        action_tag: Paid action identifier (e.g. "chat", "image-generate")
        note: Free-text description
        metadata: Extra context (requested amount, allowance, actor)
        created_at: When the row was written
    """

    account = models.ForeignKey(
        CreditAccount,
        on_delete=models.PROTECT,
        related_name="transactions",
        help_text="Account this ledger row belongs to",
    )
    sequence = models.PositiveBigIntegerField(
        help_text="Per-account gapless position in the ledger",
    )
    amount = models.BigIntegerField(
        help_text="Signed change to the balance",
    )
    balance_after = models.BigIntegerField(
        help_text="Balance snapshot after this row was applied",
    )
    kind = models.CharField(
        max_length=32,
        choices=TransactionKind.choices,
        help_text="Category of this ledger row",
    )
    action_tag = models.CharField(
        max_length=64,
        blank=True,
        default="",
        db_index=True,
        help_text="Paid action that produced this row, if any",
    )
    note = models.TextField(
        blank=True,
        default="",
        help_text="Human-readable description",
    )
    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Arbitrary JSON context for auditing",
    )
    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="Timestamp when this row was recorded",
    )

    objects = AppendOnlyManager()

    class Meta:
        ordering = ["-created_at", "-sequence"]
        verbose_name = "Credit Transaction"
        verbose_name_plural = "Credit Transactions"
        indexes = [
            models.Index(fields=["account", "created_at"], name="credits_cre_account_2d9c4a_idx"),
            models.Index(fields=["kind", "created_at"], name="credits_cre_kind_8e3b7d_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["account", "sequence"],
                name="credit_transaction_unique_sequence",
            ),
            models.CheckConstraint(
                condition=Q(balance_after__gte=0),
                name="credit_transaction_balance_after_non_negative",
            ),
            models.CheckConstraint(
                condition=(
                    Q(kind=TransactionKind.DEDUCTION, amount__lte=0)
                    | Q(kind=TransactionKind.ADMIN_USAGE, amount=0)
                    | Q(
                        kind__in=[
                            TransactionKind.BONUS,
                            TransactionKind.REFUND,
                            TransactionKind.PURCHASE,
                        ],
                        amount__gt=0,
                    )
                    | Q(kind=TransactionKind.SUBSCRIPTION_CREDIT)
                ),
                name="credit_transaction_amount_matches_kind",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.get_kind_display()} {self.amount:+d} -> {self.balance_after}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableRecordError(
                "Credit transactions are immutable; record a compensating row instead",
                details={"transaction_id": str(self.pk)},
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableRecordError(
            "Credit transactions cannot be deleted",
            details={"transaction_id": str(self.pk)},
        )
