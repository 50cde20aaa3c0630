"""
Credit ledger exceptions.

Exception Hierarchy:
    CreditError (base)
    ├── InsufficientCredits - Expected outcome of a deduct/gate check (402)
    ├── UnknownAccount - No credit account for the given id/user (404)
    ├── UnknownTier - Tier string outside the allowance table
    ├── LedgerUnavailable - Persistence failure, safe to retry (503)
    └── AlreadyReconciled - Billing event whose effect is already applied
    InvalidTierTransition - Tier status change forbidden by the state machine (409)

Usage:
    from credits.exceptions import InsufficientCredits

    try:
        credit_service.deduct(account_id, 600, ActionKind.IMAGE_GENERATE)
    except InsufficientCredits as e:
        return Response(e.to_dict(), status=e.status_code)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, ConflictError

if TYPE_CHECKING:
    import uuid
    from typing import Any


class CreditError(BaseApplicationError):
    """Base exception for credit ledger operations."""

    default_error_code: str = "CREDIT_ERROR"


class InsufficientCredits(CreditError):
    """
    Raised when a non-admin account cannot cover a charge.

    This is a normal, user-facing outcome and is not retryable without
    a top-up or upgrade.

    Attributes:
        account_id: The account that was short
        required: Credits the action needed
        current: Credits the account held when the check ran
    """

    default_error_code: str = "INSUFFICIENT_CREDITS"
    status_code: int = 402

    def __init__(
        self,
        account_id: uuid.UUID,
        required: int,
        current: int,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.account_id = account_id
        self.required = required
        self.current = current

        full_details = {
            "account_id": str(account_id),
            "required": required,
            "current": current,
        }
        if details:
            full_details.update(details)

        super().__init__(
            message=f"Insufficient credits: required {required}, you have {current}",
            error_code=error_code,
            details=full_details,
        )

    def to_dict(self) -> dict[str, Any]:
        """
        API body for a 402 response.

        Example:
            {
                "error": "Insufficient credits",
                "error_code": "INSUFFICIENT_CREDITS",
                "required": 600,
                "current": 400,
                "details": {...}
            }
        """
        result = super().to_dict()
        result["error"] = "Insufficient credits"
        result["required"] = self.required
        result["current"] = self.current
        return result


class UnknownAccount(CreditError):
    """Raised when a credit account lookup fails."""

    default_error_code: str = "ACCOUNT_NOT_FOUND"
    status_code: int = 404


class UnknownTier(CreditError):
    """Raised for tier strings that have no allowance mapping."""

    default_error_code: str = "UNKNOWN_TIER"

    def __init__(self, tier: str, error_code: str | None = None):
        self.tier = tier
        super().__init__(
            f"Unknown subscription tier: {tier!r}",
            error_code=error_code,
            details={"tier": tier},
        )


class LedgerUnavailable(CreditError):
    """
    Raised when the database fails inside a ledger unit of work.

    The unit was rolled back, so the caller may retry the whole call.
    Callers must not assume a debit happened.
    """

    default_error_code: str = "LEDGER_UNAVAILABLE"
    status_code: int = 503
    is_retryable: bool = True


class AlreadyReconciled(CreditError):
    """
    Signals a billing event whose effect is already in place.

    Informational only. Handlers log it and report success.
    """

    default_error_code: str = "ALREADY_RECONCILED"


class InvalidTierTransition(ConflictError):
    """Raised when a tier status change is not allowed from the current status."""

    default_error_code: str = "INVALID_TIER_TRANSITION"

    def __init__(self, current: str, target: str, account_id: uuid.UUID | None = None):
        self.current = current
        self.target = target
        details: dict[str, Any] = {"current_status": current, "target_status": target}
        if account_id is not None:
            details["account_id"] = str(account_id)
        super().__init__(
            f"Cannot move tier status from '{current}' to '{target}'",
            details=details,
        )
