"""
Result types returned by the credit accounting service.

Types:
    BalanceCheck: Outcome of a read-only sufficiency check
    DeductResult: Outcome of a deduction
    GrantResult: Outcome of a grant, reset or adjustment
    ReplayReport: Comparison of the stored balance with the ledger sum
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass


@dataclass(frozen=True)
class BalanceCheck:
    """
    Read-only answer to "can this account afford ``required``?".

    ``sufficient`` is always True for admin accounts. It is a snapshot:
    a later deduct may still fail if the balance moves in between.
    """

    sufficient: bool
    current_balance: int
    is_admin: bool


@dataclass(frozen=True)
class DeductResult:
    """
    Outcome of CreditService.deduct.

    Attributes:
        success: Always True; failures raise InsufficientCredits
        new_balance: Balance after the deduction (unchanged for admins)
        is_admin: Whether the admin bypass applied
        charged: Credits actually removed (0 for admins, capped charges may be lower)
        transaction_id: Ledger row written for this deduction
    """

    success: bool
    new_balance: int
    is_admin: bool
    charged: int
    transaction_id: uuid.UUID


@dataclass(frozen=True)
class GrantResult:
    """Outcome of grant, reset_to_tier_allowance and adjust."""

    success: bool
    new_balance: int
    transaction_id: uuid.UUID | None = None


@dataclass(frozen=True)
class ReplayReport:
    """
    Stored balance compared with the sum of ledger amounts.

    ``consistent`` is False when the account row and its log disagree,
    which means the table was edited outside CreditService.
    """

    account_id: uuid.UUID
    balance: int
    replayed: int
    entries: int

    @property
    def consistent(self) -> bool:
        return self.balance == self.replayed
