"""
Credit accounting service.

All balance changes go through CreditService. Each write runs as one
locked unit of work (credits.store.with_account_lock): read the
balance, decide, write the balance, append the ledger row, commit.

Rules owned here:
- Non-admin balances never go below zero
- Admins are never blocked; their usage is logged with amount 0
- Monthly resets set the balance to the tier allowance and log the
  delta from the previous balance, so the ledger sum always equals the
  balance
- Nothing is retried internally; a LedgerUnavailable means nothing was
  written and the caller decides whether to retry

Usage:
    from credits.services import credit_service
    from credits.costs import ActionKind

    check = credit_service.check_balance(account.id, 600)
    if check.sufficient:
        ...  # call the vendor
        credit_service.deduct(account.id, 600, ActionKind.IMAGE_GENERATE)
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

from django.db.models import Count, Sum

from core.exceptions import ValidationError
from core.services import BaseService

from credits.entitlements import allowance_for, validate_tier
from credits.exceptions import InsufficientCredits, UnknownAccount
from credits.models import (
    GRANT_KINDS,
    CreditAccount,
    CreditTransaction,
    Tier,
    TransactionKind,
)
from credits.store import (
    append_transaction,
    get_account,
    replay_balance,
    with_account_lock,
)
from credits.types import BalanceCheck, DeductResult, GrantResult, ReplayReport

if TYPE_CHECKING:
    from datetime import datetime


ADMIN_TAG_PREFIX = "admin-"
ADMIN_ADJUSTMENT_TAG = f"{ADMIN_TAG_PREFIX}adjustment"


def _require_amount(amount: Any, *, allow_zero: bool) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError(
            "Credit amounts must be integers",
            details={"amount": repr(amount)},
        )
    if amount < 0 or (amount == 0 and not allow_zero):
        raise ValidationError(
            "Credit amount must be positive" if not allow_zero else "Credit amount cannot be negative",
            details={"amount": amount},
        )
    return amount


class CreditService(BaseService):
    """
    Service class for credit ledger operations.

    All methods are classmethods; no instance state is kept. Every
    method that changes a balance holds the account row lock for its
    whole read-decide-write sequence.
    """

    # =========================================================================
    # Accounts
    # =========================================================================

    @classmethod
    def open_account(cls, user, *, tier: str = Tier.FREE) -> CreditAccount:
        """
        Create the credit account for a new user.

        The account starts at balance 0 and the tier allowance is
        credited through a ``subscription_credit`` row, so the opening
        balance is part of the ledger. Returns the existing account
        unchanged if the user already has one.
        """
        tier = validate_tier(tier)
        with cls.atomic():
            account, created = CreditAccount.objects.get_or_create(
                user=user,
                defaults={"tier": tier},
            )
            if not created:
                return account

            with with_account_lock(account.id) as locked:
                allowance = allowance_for(tier)
                append_transaction(
                    locked,
                    amount=allowance,
                    kind=TransactionKind.SUBSCRIPTION_CREDIT,
                    note=f"Opening {tier} allowance",
                    metadata={"allowance": allowance, "previous_balance": 0},
                )
            # Replace the balance-0 instance get_or_create cached on the user
            user.credit_account = locked

        cls.get_logger().info(
            "Opened credit account",
            extra={"account_id": str(locked.id), "user_id": str(user.pk), "tier": tier},
        )
        return locked

    @staticmethod
    def get_account(account_id: uuid.UUID | str) -> CreditAccount:
        """
        Get account by ID.

        Raises:
            UnknownAccount: If the account doesn't exist
        """
        return get_account(account_id)

    @staticmethod
    def get_account_for_user(user) -> CreditAccount:
        """
        Get the account owned by ``user``.

        Raises:
            UnknownAccount: If the user has no credit account
        """
        try:
            return CreditAccount.objects.get(user=user)
        except CreditAccount.DoesNotExist:
            raise UnknownAccount(
                "No credit account for user",
                details={"user_id": str(user.pk)},
            )

    # =========================================================================
    # Balance Operations
    # =========================================================================

    @classmethod
    def check_balance(cls, account_id: uuid.UUID | str, required: int) -> BalanceCheck:
        """
        Read-only sufficiency check.

        Lets a caller fail fast before expensive upstream work. It does
        not reserve anything: a concurrent deduct can still consume the
        balance before this caller's own deduct runs.
        """
        required = _require_amount(required, allow_zero=True)
        account = get_account(account_id)
        return BalanceCheck(
            sufficient=account.is_admin or account.balance >= required,
            current_balance=account.balance,
            is_admin=account.is_admin,
        )

    @classmethod
    def deduct(
        cls,
        account_id: uuid.UUID | str,
        amount: int,
        action_kind: str,
        note: str | None = None,
        *,
        cap_at_balance: bool = False,
        metadata: dict[str, Any] | None = None,
    ) -> DeductResult:
        """
        Atomically charge ``amount`` credits for a paid action.

        Branches, all evaluated under the account lock:
        - admin: write a zero-amount ``admin_usage`` row, balance unchanged
        - balance < amount: raise InsufficientCredits, write nothing
          (with ``cap_at_balance`` the remaining balance is charged instead
          and the shortfall is recorded in the row metadata)
        - otherwise: subtract and write a ``deduction`` row of ``-amount``

        Args:
            account_id: Account to charge
            amount: Credits to remove (non-negative integer)
            action_kind: Paid action tag stored on the ledger row
            note: Optional description
            cap_at_balance: Charge what is left instead of failing; used
                when settling a realized cost after the action already ran
            metadata: Extra audit context for the ledger row

        Raises:
            InsufficientCredits: Non-admin balance below ``amount``
            UnknownAccount: Account doesn't exist
            LedgerUnavailable: Database failure, nothing written
        """
        amount = _require_amount(amount, allow_zero=True)
        row_metadata = dict(metadata or {})
        logger = cls.get_logger()

        with with_account_lock(account_id) as account:
            if account.is_admin:
                row_metadata["requested_amount"] = amount
                entry = append_transaction(
                    account,
                    amount=0,
                    kind=TransactionKind.ADMIN_USAGE,
                    action_tag=action_kind,
                    note=note or "",
                    metadata=row_metadata,
                )
                logger.info(
                    "Admin usage logged without charge",
                    extra={"account_id": str(account.id), "amount": amount, "action": action_kind},
                )
                return DeductResult(
                    success=True,
                    new_balance=account.balance,
                    is_admin=True,
                    charged=0,
                    transaction_id=entry.id,
                )

            charge = amount
            if account.balance < amount:
                if not cap_at_balance:
                    logger.info(
                        "Deduction refused for insufficient credits",
                        extra={
                            "account_id": str(account.id),
                            "required": amount,
                            "current": account.balance,
                            "action": action_kind,
                        },
                    )
                    raise InsufficientCredits(
                        account_id=account.id,
                        required=amount,
                        current=account.balance,
                    )
                charge = account.balance
                row_metadata["requested_amount"] = amount
                row_metadata["shortfall"] = amount - charge

            entry = append_transaction(
                account,
                amount=-charge,
                kind=TransactionKind.DEDUCTION,
                action_tag=action_kind,
                note=note or "",
                metadata=row_metadata,
            )

        logger.info(
            "Credits deducted",
            extra={
                "account_id": str(account.id),
                "amount": charge,
                "new_balance": account.balance,
                "action": action_kind,
            },
        )
        return DeductResult(
            success=True,
            new_balance=account.balance,
            is_admin=False,
            charged=charge,
            transaction_id=entry.id,
        )

    @classmethod
    def grant(
        cls,
        account_id: uuid.UUID | str,
        amount: int,
        kind: str = TransactionKind.BONUS,
        note: str | None = None,
        *,
        metadata: dict[str, Any] | None = None,
    ) -> GrantResult:
        """
        Add ``amount`` credits to an account.

        Args:
            account_id: Account to credit
            amount: Credits to add (positive integer)
            kind: One of bonus, refund, purchase, subscription_credit
            note: Optional description
            metadata: Extra audit context

        Raises:
            ValidationError: Non-positive amount or non-additive kind
            UnknownAccount: Account doesn't exist
            LedgerUnavailable: Database failure, nothing written
        """
        amount = _require_amount(amount, allow_zero=False)
        if kind not in GRANT_KINDS:
            raise ValidationError(
                f"'{kind}' is not a grant kind",
                details={"kind": str(kind), "allowed": sorted(GRANT_KINDS)},
            )

        with with_account_lock(account_id) as account:
            entry = append_transaction(
                account,
                amount=amount,
                kind=kind,
                note=note or "",
                metadata=metadata,
            )

        cls.get_logger().info(
            "Credits granted",
            extra={
                "account_id": str(account.id),
                "amount": amount,
                "kind": str(kind),
                "new_balance": account.balance,
            },
        )
        return GrantResult(success=True, new_balance=account.balance, transaction_id=entry.id)

    @classmethod
    def reset_to_tier_allowance(
        cls,
        account_id: uuid.UUID | str,
        tier: str,
        note: str | None = None,
    ) -> GrantResult:
        """
        Set the balance to the tier's monthly allowance.

        Unused credits do not roll over. Applying the same reset twice
        gives the same balance, which is what makes billing webhooks
        safe to replay.

        Raises:
            UnknownTier: Tier has no allowance
            UnknownAccount: Account doesn't exist
            LedgerUnavailable: Database failure, nothing written
        """
        with with_account_lock(account_id) as account:
            entry = cls.reset_locked(account, tier, note=note)
        return GrantResult(success=True, new_balance=account.balance, transaction_id=entry.id)

    @classmethod
    def reset_locked(
        cls,
        account: CreditAccount,
        tier: str,
        note: str | None = None,
        *,
        extra_fields: tuple[str, ...] = (),
        metadata: dict[str, Any] | None = None,
    ) -> CreditTransaction:
        """
        Reset an account already locked by the caller.

        The ledger row stores the delta ``allowance - previous_balance``
        as its amount; ``allowance`` and ``previous_balance`` go in the
        metadata. A reset that changes nothing still writes a zero row
        so every renewal is visible in the audit trail.

        Args:
            account: Account yielded by with_account_lock
            tier: Tier whose allowance to apply
            note: Optional description
            extra_fields: Account fields the caller changed in the same unit
            metadata: Extra audit context (billing event id, invoice id)
        """
        allowance = allowance_for(tier)
        previous = account.balance
        row_metadata = {"allowance": allowance, "previous_balance": previous, "tier": str(tier)}
        row_metadata.update(metadata or {})

        entry = append_transaction(
            account,
            amount=allowance - previous,
            kind=TransactionKind.SUBSCRIPTION_CREDIT,
            note=note or f"{tier} allowance reset",
            metadata=row_metadata,
            extra_fields=extra_fields,
        )
        cls.get_logger().info(
            "Balance reset to tier allowance",
            extra={
                "account_id": str(account.id),
                "tier": str(tier),
                "allowance": allowance,
                "previous_balance": previous,
            },
        )
        return entry

    @classmethod
    def adjust(
        cls,
        account_id: uuid.UUID | str,
        amount: int,
        note: str,
        actor: str | None = None,
    ) -> GrantResult:
        """
        Admin console balance edit, recorded as a compensating row.

        Positive amounts are written as ``bonus``; negative amounts as a
        ``deduction`` tagged ``admin-adjustment``. The balance floor
        still applies.

        Raises:
            ValidationError: Zero amount or missing note
            InsufficientCredits: Negative adjustment larger than the balance
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount == 0:
            raise ValidationError("Adjustment must be a non-zero integer", details={"amount": amount})
        if not note:
            raise ValidationError("Adjustments require a note", details={"note": note})

        metadata = {"actor": actor} if actor else {}
        if amount > 0:
            return cls.grant(account_id, amount, TransactionKind.BONUS, note, metadata=metadata)

        result = cls.deduct(account_id, -amount, ADMIN_ADJUSTMENT_TAG, note, metadata=metadata)
        return GrantResult(
            success=True,
            new_balance=result.new_balance,
            transaction_id=result.transaction_id,
        )

    # =========================================================================
    # Admin Privilege
    # =========================================================================

    @classmethod
    def promote_to_admin(
        cls,
        account_id: uuid.UUID | str,
        reason: str,
        actor: str | None = None,
    ) -> CreditAccount:
        """
        Grant the admin bypass to an account.

        An explicit administrative action: it requires a reason, writes a
        zero-amount audit row and logs at warning level. Promoting an
        admin again is a no-op.
        """
        return cls._set_admin(account_id, True, reason, actor)

    @classmethod
    def demote_from_admin(
        cls,
        account_id: uuid.UUID | str,
        reason: str,
        actor: str | None = None,
    ) -> CreditAccount:
        """Remove the admin bypass from an account."""
        return cls._set_admin(account_id, False, reason, actor)

    @classmethod
    def _set_admin(cls, account_id, is_admin: bool, reason: str, actor: str | None) -> CreditAccount:
        if not reason:
            raise ValidationError("A reason is required to change admin status")

        action = "promote" if is_admin else "demote"
        with with_account_lock(account_id) as account:
            if account.is_admin == is_admin:
                return account
            account.is_admin = is_admin
            append_transaction(
                account,
                amount=0,
                kind=TransactionKind.ADMIN_USAGE,
                action_tag=f"{ADMIN_TAG_PREFIX}{action}",
                note=reason,
                metadata={"actor": actor} if actor else {},
                extra_fields=("is_admin",),
            )

        cls.get_logger().warning(
            f"Account admin status changed: {action}",
            extra={"account_id": str(account.id), "reason": reason, "actor": actor},
        )
        return account

    # =========================================================================
    # Queries
    # =========================================================================

    @staticmethod
    def get_transactions(
        account_id: uuid.UUID | str,
        limit: int = 100,
        offset: int = 0,
    ) -> list[CreditTransaction]:
        """Ledger rows for an account, newest first."""
        return list(
            CreditTransaction.objects.filter(account_id=account_id).order_by("-sequence")[
                offset : offset + limit
            ]
        )

    @staticmethod
    def verify_replay(account_id: uuid.UUID | str) -> ReplayReport:
        """Compare the stored balance with the sum of the account's ledger."""
        account = get_account(account_id)
        replayed, entries = replay_balance(account.id)
        return ReplayReport(
            account_id=account.id,
            balance=account.balance,
            replayed=replayed,
            entries=entries,
        )

    @staticmethod
    def usage_summary(since: datetime | None = None) -> list[dict[str, Any]]:
        """
        Credits spent per paid action.

        Admin usage counts toward ``uses`` but not ``credits``. Rows
        written by the admin console (promotions, adjustments) are not
        usage and are left out.
        """
        queryset = (
            CreditTransaction.objects.filter(
                kind__in=[TransactionKind.DEDUCTION, TransactionKind.ADMIN_USAGE],
            )
            .exclude(action_tag="")
            .exclude(action_tag__startswith=ADMIN_TAG_PREFIX)
        )
        if since is not None:
            queryset = queryset.created_since(since)

        rows = (
            queryset.values("action_tag")
            .annotate(uses=Count("id"), total=Sum("amount"))
            .order_by("action_tag")
        )
        return [
            {"action": row["action_tag"], "uses": row["uses"], "credits": -(row["total"] or 0)}
            for row in rows
        ]


# Singleton instance for convenience
# Usage: from credits.services import credit_service
credit_service = CreditService()
