"""
Tests for the action gate and the requires_credits view decorator.
"""

import pytest
from rest_framework import status
from rest_framework.response import Response
from rest_framework.test import APIRequestFactory, force_authenticate
from rest_framework.views import APIView

from authentication.models import User
from credits.costs import ActionKind
from credits.exceptions import LedgerUnavailable
from credits.gate import ActionGate, requires_credits
from credits.models import CreditAccount, CreditTransaction, TransactionKind
from credits.tests.factories import CreditAccountFactory


class TestGuard:
    def test_proceeds_when_balance_covers_estimate(self, account):
        decision = ActionGate.guard(account.id, 600)

        assert decision.proceed is True
        assert decision.current_balance == 1000
        assert decision.error is None

    def test_blocks_with_insufficient_credits_error(self, db):
        account = CreditAccountFactory(balance=400)

        decision = ActionGate.guard(account.id, 600)

        assert decision.proceed is False
        assert decision.error.required == 600
        assert decision.error.current == 400

    def test_admin_always_proceeds(self, admin_account):
        decision = ActionGate.guard(admin_account.id, 10**6)

        assert decision.proceed is True
        assert decision.is_admin is True

    def test_guard_never_writes(self, account):
        ActionGate.guard(account.id, 10**6)

        assert CreditTransaction.objects.filter(account=account).count() == 1

    def test_guard_action_uses_cost_table(self, db):
        account = CreditAccountFactory(balance=5000)

        decision = ActionGate.guard_action(account.id, ActionKind.VIDEO_GENERATE, duration_seconds=8)

        assert decision.required == 6000
        assert decision.proceed is False


class TestCharge:
    def test_charges_realized_cost(self, account):
        result = ActionGate.charge(account.id, 36, ActionKind.CHAT)

        assert result.charged == 36
        assert result.new_balance == 964

    def test_capped_when_balance_spent_concurrently(self, db):
        """
        Given a request that passed the guard
        When another request spent the credits before the charge
        Then the charge takes what is left instead of failing
        """
        account = CreditAccountFactory(balance=600)
        assert ActionGate.guard(account.id, 600).proceed

        ActionGate.charge(account.id, 500, ActionKind.IMAGE_ANALYZE)
        result = ActionGate.charge(account.id, 600, ActionKind.IMAGE_GENERATE)

        assert result.charged == 100
        assert result.new_balance == 0
        row = CreditTransaction.objects.filter(account=account).order_by("-sequence").first()
        assert row.metadata["shortfall"] == 500


class _SearchView(APIView):
    @requires_credits(ActionKind.WEB_SEARCH)
    def post(self, request):
        return Response({"decision_balance": request.credit_decision.current_balance})


class _FailingSearchView(APIView):
    @requires_credits(ActionKind.WEB_SEARCH)
    def post(self, request):
        return Response({"error": "upstream"}, status=status.HTTP_502_BAD_GATEWAY)


class _MeteredView(APIView):
    @requires_credits(ActionKind.CHAT, estimate=lambda request: request.data["estimate"], settle=False)
    def post(self, request):
        return Response({"ok": True})


def _post(view_class, user, data=None):
    request = APIRequestFactory().post("/paid/", data or {}, format="json")
    force_authenticate(request, user=user)
    return view_class.as_view()(request)


class TestRequiresCredits:
    def test_charges_flat_cost_after_success(self, account):
        response = _post(_SearchView, account.user)

        account.refresh_from_db()
        assert response.status_code == status.HTTP_200_OK
        assert response.data["decision_balance"] == 1000
        assert account.balance == 850

    def test_returns_402_when_short(self, db):
        account = CreditAccountFactory(balance=100)

        response = _post(_SearchView, account.user)

        assert response.status_code == status.HTTP_402_PAYMENT_REQUIRED
        assert response.data["error"] == "Insufficient credits"
        assert response.data["required"] == 150
        assert response.data["current"] == 100

    def test_no_charge_on_failed_response(self, account):
        response = _post(_FailingSearchView, account.user)

        account.refresh_from_db()
        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        assert account.balance == 1000

    def test_callable_estimate_without_settle(self, account):
        blocked = _post(_MeteredView, account.user, {"estimate": 1001})
        allowed = _post(_MeteredView, account.user, {"estimate": 1000})

        account.refresh_from_db()
        assert blocked.status_code == status.HTTP_402_PAYMENT_REQUIRED
        assert allowed.status_code == status.HTTP_200_OK
        assert account.balance == 1000

    def test_admin_usage_logged(self, admin_account):
        response = _post(_SearchView, admin_account.user)

        assert response.status_code == status.HTTP_200_OK
        row = CreditTransaction.objects.filter(account=admin_account).order_by("-sequence").first()
        assert row.kind == TransactionKind.ADMIN_USAGE
        assert row.action_tag == "web-search"

    def test_user_without_account_gets_404(self, db):
        # bulk_create skips post_save, so no account is opened
        (user,) = User.objects.bulk_create([User(email="noaccount@example.com")])
        assert not CreditAccount.objects.filter(user=user).exists()

        response = _post(_SearchView, user)

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data["error_code"] == "ACCOUNT_NOT_FOUND"

    def test_response_survives_failed_charge(self, account, mocker, app_caplog):
        """
        Given the ledger is down when the post-response charge runs
        When a paid view succeeds
        Then the caller still gets the result and the failure is logged
        """
        mocker.patch.object(
            ActionGate,
            "charge",
            side_effect=LedgerUnavailable("Credit ledger is temporarily unavailable"),
        )

        response = _post(_SearchView, account.user)

        account.refresh_from_db()
        assert response.status_code == status.HTTP_200_OK
        assert response.data["decision_balance"] == 1000
        assert account.balance == 1000
        failures = [r for r in app_caplog.records if r.levelname == "ERROR"]
        assert failures[0].error_code == "LEDGER_UNAVAILABLE"
        assert failures[0].action == ActionKind.WEB_SEARCH
