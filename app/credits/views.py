"""
API views for credit balances, ledger history and the admin console.

Provides:
- CreditAccountView: Balance, tier and status of the caller's account
- CreditTransactionListView: Paginated ledger history
- CostTableView: Action cost table
- QuoteView: Gate decision for a paid action
- AdminGrantView: Grant or adjust credits on any account (staff)
- AdminPromoteView: Toggle the admin bypass on any account (staff)
- AdminStatsView: Usage per action and subscriptions per tier (staff)
"""

from __future__ import annotations

from django.db.models import Count
from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import generics, status
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import BaseApplicationError

from credits.costs import cost_table, estimate_cost
from credits.gate import ActionGate
from credits.models import CreditAccount, CreditTransaction
from credits.serializers import (
    CostTableEntrySerializer,
    CreditAccountSerializer,
    CreditTransactionSerializer,
    GrantSerializer,
    PromoteSerializer,
    QuoteRequestSerializer,
    QuoteSerializer,
    UsageSummarySerializer,
)
from credits.services import CreditService


def _error_response(exc: BaseApplicationError) -> Response:
    return Response(exc.to_dict(), status=exc.status_code)


class CreditAccountView(APIView):
    """
    Credit summary for the current user.

    GET /api/v1/credits/

    Response:
        200 OK: Balance, tier, tier status, period end and admin flag
        404 Not Found: User has no credit account
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_credit_account",
        summary="Get credit balance",
        description="Return the caller's balance, subscription tier and billing status.",
        responses={
            200: OpenApiResponse(response=CreditAccountSerializer, description="Credit account"),
            404: OpenApiResponse(description="No credit account for this user"),
        },
        tags=["Credits"],
    )
    def get(self, request):
        try:
            account = CreditService.get_account_for_user(request.user)
        except BaseApplicationError as e:
            return _error_response(e)
        return Response(CreditAccountSerializer(account).data)


@extend_schema(
    operation_id="list_credit_transactions",
    summary="List ledger history",
    description="Paginated credit ledger rows for the caller, newest first.",
    tags=["Credits"],
)
class CreditTransactionListView(generics.ListAPIView):
    """
    GET /api/v1/credits/transactions/

    Uses the default page-number pagination.
    """

    permission_classes = [IsAuthenticated]
    serializer_class = CreditTransactionSerializer

    def get_queryset(self):
        return CreditTransaction.objects.filter(account__user=self.request.user).order_by("-sequence")


class CostTableView(APIView):
    """
    GET /api/v1/credits/costs/

    Base credit cost of every paid action.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_cost_table",
        summary="Get action costs",
        responses={200: CostTableEntrySerializer(many=True)},
        tags=["Credits"],
    )
    def get(self, request):
        return Response(CostTableEntrySerializer(cost_table(), many=True).data)


class QuoteView(APIView):
    """
    Estimate an action's cost and whether the caller can afford it.

    POST /api/v1/credits/quote/

    Request:
        - action (required): Paid action identifier
        - quantity (optional): Units, default 1
        - duration_seconds (optional): Video or audio length
        - characters (optional): Text length for speech generation

    Response:
        200 OK: Quote with the gate decision
        400 Bad Request: Unknown action or unsupported duration
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="quote_action",
        summary="Quote a paid action",
        request=QuoteRequestSerializer,
        responses={
            200: OpenApiResponse(response=QuoteSerializer, description="Cost estimate and gate decision"),
            400: OpenApiResponse(description="Invalid action parameters"),
        },
        tags=["Credits"],
    )
    def post(self, request):
        serializer = QuoteRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        try:
            account = CreditService.get_account_for_user(request.user)
            cost = estimate_cost(
                data["action"],
                quantity=data["quantity"],
                duration_seconds=data.get("duration_seconds"),
                characters=data.get("characters"),
            )
            decision = ActionGate.guard(account.id, cost)
        except BaseApplicationError as e:
            return _error_response(e)

        quote = {
            "action": data["action"],
            "cost": cost,
            "balance": decision.current_balance,
            "allowed": decision.proceed,
            "is_admin": decision.is_admin,
        }
        return Response(QuoteSerializer(quote).data)


# =============================================================================
# Admin Console
# =============================================================================


class AdminGrantView(APIView):
    """
    Grant or adjust credits on an account.

    POST /api/v1/credits/admin/accounts/<account_id>/grant/

    Positive amounts are grants of the requested kind; negative amounts
    are adjustments and cannot take the balance below zero.
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="admin_grant_credits",
        summary="Grant or adjust credits",
        request=GrantSerializer,
        responses={
            200: OpenApiResponse(response=CreditAccountSerializer, description="Updated account"),
            400: OpenApiResponse(description="Invalid amount"),
            402: OpenApiResponse(description="Adjustment larger than the balance"),
            404: OpenApiResponse(description="Account not found"),
        },
        tags=["Credits - Admin"],
    )
    def post(self, request, account_id):
        serializer = GrantSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        actor = request.user.email
        try:
            if data["amount"] > 0:
                CreditService.grant(
                    account_id,
                    data["amount"],
                    data["kind"],
                    data["note"],
                    metadata={"actor": actor},
                )
            else:
                CreditService.adjust(account_id, data["amount"], data["note"], actor=actor)
            account = CreditService.get_account(account_id)
        except BaseApplicationError as e:
            return _error_response(e)

        return Response(CreditAccountSerializer(account).data)


class AdminPromoteView(APIView):
    """
    Grant or revoke the admin bypass.

    POST /api/v1/credits/admin/accounts/<account_id>/promote/
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="admin_promote_account",
        summary="Change admin status",
        request=PromoteSerializer,
        responses={
            200: OpenApiResponse(response=CreditAccountSerializer, description="Updated account"),
            404: OpenApiResponse(description="Account not found"),
        },
        tags=["Credits - Admin"],
    )
    def post(self, request, account_id):
        serializer = PromoteSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        try:
            if data["is_admin"]:
                account = CreditService.promote_to_admin(account_id, data["reason"], actor=request.user.email)
            else:
                account = CreditService.demote_from_admin(account_id, data["reason"], actor=request.user.email)
        except BaseApplicationError as e:
            return _error_response(e)

        return Response(CreditAccountSerializer(account).data)


class AdminStatsView(APIView):
    """
    GET /api/v1/credits/admin/stats/

    Credits used per action and number of accounts per tier.
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="admin_credit_stats",
        summary="Usage statistics",
        responses={200: UsageSummarySerializer},
        tags=["Credits - Admin"],
    )
    def get(self, request):
        subscriptions = {
            row["tier"]: row["count"]
            for row in CreditAccount.objects.values("tier").annotate(count=Count("id")).order_by("tier")
        }
        payload = {
            "usage": CreditService.usage_summary(),
            "subscriptions": subscriptions,
        }
        return Response(UsageSummarySerializer(payload).data)
