"""
Action gate for paid tools.

Two phases around every paid vendor call:

1. guard: fail fast when the account cannot cover the worst-case
   estimate, before any upstream work is done
2. charge: after the vendor call succeeds, deduct the realized cost

The guard is advisory. Two concurrent requests can both pass it; the
charge is what enforces the balance, and because the work already
happened it is capped at whatever balance is left (the shortfall goes
in the ledger row metadata).

Usage:
    from credits.gate import ActionGate, requires_credits

    class ImageGenerateView(APIView):
        @requires_credits(ActionKind.IMAGE_GENERATE)
        def post(self, request):
            ...  # vendor call; the flat cost is charged on a 2xx response

    decision = ActionGate.guard(account.id, token_estimate)
    if not decision.proceed:
        return Response(decision.error.to_dict(), status=402)
    reply = vendor.chat(...)
    ActionGate.charge(account.id, token_cost(reply.prompt_tokens, reply.completion_tokens), ActionKind.CHAT)
"""

from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from rest_framework import status
from rest_framework.response import Response

from core.exceptions import BaseApplicationError
from core.services import BaseService

from credits.costs import estimate_cost
from credits.exceptions import InsufficientCredits
from credits.services import CreditService

if TYPE_CHECKING:
    import uuid

    from credits.types import DeductResult


@dataclass(frozen=True)
class GateDecision:
    """
    Result of ActionGate.guard.

    Attributes:
        proceed: Whether the caller may start the paid work
        required: Estimated cost that was checked
        current_balance: Balance seen by the check
        is_admin: Whether the admin bypass applied
        error: InsufficientCredits describing the refusal, if any
    """

    proceed: bool
    required: int
    current_balance: int
    is_admin: bool
    error: InsufficientCredits | None = None


class ActionGate(BaseService):
    """Pre-check and settle paid actions against the credit ledger."""

    @classmethod
    def guard(cls, account_id: uuid.UUID | str, estimated_cost: int) -> GateDecision:
        """
        Check whether ``account_id`` can afford ``estimated_cost``.

        Never writes. Admins always proceed.
        """
        check = CreditService.check_balance(account_id, estimated_cost)
        if check.sufficient:
            return GateDecision(
                proceed=True,
                required=estimated_cost,
                current_balance=check.current_balance,
                is_admin=check.is_admin,
            )

        cls.get_logger().info(
            "Paid action blocked before upstream call",
            extra={
                "account_id": str(account_id),
                "required": estimated_cost,
                "current": check.current_balance,
            },
        )
        return GateDecision(
            proceed=False,
            required=estimated_cost,
            current_balance=check.current_balance,
            is_admin=False,
            error=InsufficientCredits(
                account_id=account_id,
                required=estimated_cost,
                current=check.current_balance,
            ),
        )

    @classmethod
    def guard_action(cls, account_id: uuid.UUID | str, action: str, **usage) -> GateDecision:
        """Guard using the cost table estimate for ``action``."""
        return cls.guard(account_id, estimate_cost(action, **usage))

    @classmethod
    def charge(
        cls,
        account_id: uuid.UUID | str,
        actual_cost: int,
        action_kind: str,
        note: str | None = None,
    ) -> DeductResult:
        """
        Deduct the realized cost of a completed action.

        Capped at the remaining balance: a request that passed the guard
        never fails here because a concurrent request spent the credits
        first.
        """
        return CreditService.deduct(
            account_id,
            actual_cost,
            action_kind,
            note,
            cap_at_balance=True,
        )


def requires_credits(action: str, estimate: int | Callable | None = None, settle: bool = True):
    """
    Gate an APIView handler on the caller's credit balance.

    Args:
        action: ActionKind of the paid tool
        estimate: Fixed cost, a callable taking the request and returning
            the cost, or None for the cost table estimate
        settle: Charge the estimate after a successful response. Views
            with usage-metered costs pass False and call ActionGate.charge
            themselves with the realized cost.

    Returns:
        Decorator function

    Example:
        @requires_credits(ActionKind.WEB_SEARCH)
        def post(self, request):
            ...

        @requires_credits(
            ActionKind.VIDEO_GENERATE,
            estimate=lambda request: video_cost(request.data.get("duration")),
        )
        def post(self, request):
            ...

    HTTP 402 Response:
        Returns 402 Payment Required with the InsufficientCredits body
        when the balance cannot cover the estimate.
    """

    def decorator(func: Callable):
        @functools.wraps(func)
        def wrapper(view, request, *args, **kwargs):
            try:
                account = CreditService.get_account_for_user(request.user)
                if estimate is None:
                    cost = estimate_cost(action)
                elif callable(estimate):
                    cost = estimate(request)
                else:
                    cost = estimate
                decision = ActionGate.guard(account.id, cost)
            except BaseApplicationError as e:
                return Response(e.to_dict(), status=e.status_code)

            if not decision.proceed:
                return Response(
                    decision.error.to_dict(),
                    status=status.HTTP_402_PAYMENT_REQUIRED,
                )

            request.credit_decision = decision
            response = func(view, request, *args, **kwargs)

            if settle and response.status_code < 400:
                # The vendor work is done; a failed charge must not lose its result
                try:
                    ActionGate.charge(account.id, cost, action)
                except BaseApplicationError as e:
                    ActionGate.get_logger().error(
                        f"Charge after {action} failed: {e.message}",
                        extra={
                            "account_id": str(account.id),
                            "action": action,
                            "cost": cost,
                            "error_code": e.error_code,
                        },
                        exc_info=True,
                    )
            return response

        return wrapper

    return decorator
