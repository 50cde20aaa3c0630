"""
Ledger store: locked units of work over one credit account.

Every balance write goes through ``with_account_lock``: it opens a
database transaction, locks the account row with SELECT ... FOR UPDATE
and yields it. Leaving the block normally commits; any exception rolls
the whole unit back, so no partial write ever persists. A second
writer on the same account blocks on the row lock until the first
commits, and then reads the committed balance.

Usage:
    from credits.store import append_transaction, with_account_lock

    with with_account_lock(account_id) as account:
        if account.balance >= amount:
            append_transaction(account, amount=-amount, kind=TransactionKind.DEDUCTION)
"""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, transaction
from django.db.models import Count, Sum
from django.db.models.functions import Coalesce

from credits.exceptions import LedgerUnavailable, UnknownAccount
from credits.models import CreditAccount, CreditTransaction

if TYPE_CHECKING:
    from collections.abc import Generator
    from contextlib import AbstractContextManager

logger = logging.getLogger(__name__)


@contextmanager
def lock_account(**lookup: Any) -> Generator[CreditAccount, None, None]:
    """
    Lock the single account matching ``lookup`` for the enclosed block.

    Args:
        **lookup: Field lookup identifying one account, e.g. ``pk=...``,
            ``user_id=...``, ``billing_customer_ref=...``

    Raises:
        UnknownAccount: No account matches
        LedgerUnavailable: The database failed; nothing was written
    """
    try:
        with transaction.atomic():
            try:
                account = CreditAccount.objects.select_for_update().get(**lookup)
            except (CreditAccount.DoesNotExist, DjangoValidationError, ValueError):
                raise UnknownAccount(
                    "Credit account not found",
                    details={key: str(value) for key, value in lookup.items()},
                )
            yield account
    except DatabaseError as e:
        logger.error(
            "Ledger unit of work failed",
            extra={"lookup": {key: str(value) for key, value in lookup.items()}},
            exc_info=True,
        )
        raise LedgerUnavailable(
            "Credit ledger is temporarily unavailable",
            details={"reason": type(e).__name__},
        ) from e


def with_account_lock(account_id: uuid.UUID | str) -> AbstractContextManager[CreditAccount]:
    """Lock the account with primary key ``account_id``."""
    return lock_account(pk=account_id)


def with_account_lock_for_user(user_id: Any) -> AbstractContextManager[CreditAccount]:
    """Lock the account owned by ``user_id``."""
    return lock_account(user_id=user_id)


def append_transaction(
    account: CreditAccount,
    *,
    amount: int,
    kind: str,
    action_tag: str = "",
    note: str = "",
    metadata: dict[str, Any] | None = None,
    extra_fields: tuple[str, ...] = (),
) -> CreditTransaction:
    """
    Apply ``amount`` to a locked account and append the matching ledger row.

    Must run inside ``with_account_lock``. The caller decides whether
    the change is allowed; this only keeps the balance column, the
    sequence counter and the log in step.

    Args:
        account: Account yielded by with_account_lock
        amount: Signed change to apply
        kind: TransactionKind value
        action_tag: Paid action identifier
        note: Free-text description
        metadata: Extra audit context
        extra_fields: Other account fields changed by the caller in the
            same unit that should be saved along with the balance
    """
    if not transaction.get_connection().in_atomic_block:
        raise RuntimeError("append_transaction must run inside with_account_lock")

    new_balance = account.balance + amount
    if new_balance < 0:
        raise ValueError(f"Ledger write would leave a negative balance ({new_balance})")

    account.balance = new_balance
    account.last_sequence += 1
    account.save(update_fields=["balance", "last_sequence", "updated_at", *extra_fields])

    return CreditTransaction.objects.create(
        account=account,
        sequence=account.last_sequence,
        amount=amount,
        balance_after=new_balance,
        kind=kind,
        action_tag=action_tag or "",
        note=note or "",
        metadata=metadata or {},
    )


def get_account(account_id: uuid.UUID | str) -> CreditAccount:
    """
    Unlocked read of an account.

    Raises:
        UnknownAccount: If the account doesn't exist
    """
    try:
        return CreditAccount.objects.get(pk=account_id)
    except (CreditAccount.DoesNotExist, DjangoValidationError):
        raise UnknownAccount(
            f"Credit account {account_id} not found",
            details={"account_id": str(account_id)},
        )


def replay_balance(account_id: uuid.UUID | str) -> tuple[int, int]:
    """Sum and count of all ledger amounts for an account."""
    result = CreditTransaction.objects.filter(account_id=account_id).aggregate(
        total=Coalesce(Sum("amount"), 0),
        entries=Count("id"),
    )
    return result["total"], result["entries"]
