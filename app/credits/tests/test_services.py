"""
Tests for CreditService.

Covers:
- Balance floor and the exact boundary
- Admin bypass and its audit rows
- Grants, resets and admin adjustments
- Ledger replay (balance == sum of amounts) after mixed operations
- Rollback when the database fails mid-write
"""

import random
from unittest.mock import patch

import pytest
from django.db import DatabaseError

from authentication.tests.factories import UserFactory
from core.exceptions import ValidationError
from credits.costs import ActionKind
from credits.exceptions import InsufficientCredits, LedgerUnavailable, UnknownAccount, UnknownTier
from credits.models import CreditAccount, CreditTransaction, Tier, TransactionKind
from credits.services import ADMIN_ADJUSTMENT_TAG, CreditService
from credits.tests.factories import CreditAccountFactory


def _rows(account):
    return list(CreditTransaction.objects.filter(account=account).order_by("sequence"))


# =============================================================================
# Accounts
# =============================================================================


class TestOpenAccount:
    def test_existing_account_returned_unchanged(self, account):
        again = CreditService.open_account(account.user)

        assert again.pk == account.pk
        assert len(_rows(account)) == 1

    def test_new_user_sees_opening_balance_without_reload(self, db):
        """
        Given a user just created (the signal opens the account)
        When credit_account is read from that same user instance
        Then it carries the opening allowance, not the pre-ledger zero
        """
        user = UserFactory()

        assert user.credit_account.balance == 1000
        assert user.credit_account.last_sequence == 1

    def test_get_account_unknown_raises(self, db):
        with pytest.raises(UnknownAccount):
            CreditService.get_account("00000000-0000-0000-0000-000000000000")

    def test_get_account_malformed_id_raises(self, db):
        with pytest.raises(UnknownAccount):
            CreditService.get_account("not-a-uuid")


# =============================================================================
# Deduct
# =============================================================================


class TestDeduct:
    def test_deducts_and_logs_row(self, account):
        result = CreditService.deduct(account.id, 30, ActionKind.CHAT, "hello")

        account.refresh_from_db()
        assert result.success is True
        assert result.new_balance == 970
        assert result.charged == 30
        assert account.balance == 970

        row = _rows(account)[-1]
        assert row.id == result.transaction_id
        assert row.kind == TransactionKind.DEDUCTION
        assert row.amount == -30
        assert row.balance_after == 970
        assert row.action_tag == "chat"
        assert row.note == "hello"

    def test_boundary_one_over_balance_fails_without_row(self, db):
        """
        Given balance 100
        When deducting 101
        Then InsufficientCredits is raised, balance stays 100 and no row is written
        """
        account = CreditAccountFactory(balance=100)
        rows_before = len(_rows(account))

        with pytest.raises(InsufficientCredits) as exc_info:
            CreditService.deduct(account.id, 101, ActionKind.CHAT)

        account.refresh_from_db()
        assert account.balance == 100
        assert len(_rows(account)) == rows_before
        assert exc_info.value.required == 101
        assert exc_info.value.current == 100

    def test_boundary_exact_balance_succeeds(self, db):
        account = CreditAccountFactory(balance=100)

        result = CreditService.deduct(account.id, 100, ActionKind.CHAT)

        assert result.new_balance == 0

    def test_zero_amount_writes_zero_row(self, account):
        result = CreditService.deduct(account.id, 0, ActionKind.CHAT)

        assert result.new_balance == 1000
        assert _rows(account)[-1].amount == 0

    @pytest.mark.parametrize("amount", [-1, 1.5, "10", True])
    def test_rejects_invalid_amounts(self, account, amount):
        with pytest.raises(ValidationError):
            CreditService.deduct(account.id, amount, ActionKind.CHAT)

    def test_unknown_account_raises(self, db):
        with pytest.raises(UnknownAccount):
            CreditService.deduct("00000000-0000-0000-0000-000000000000", 1, ActionKind.CHAT)

    def test_cap_at_balance_charges_remainder(self, db):
        account = CreditAccountFactory(balance=40)

        result = CreditService.deduct(account.id, 100, ActionKind.CHAT, cap_at_balance=True)

        assert result.charged == 40
        assert result.new_balance == 0
        row = _rows(account)[-1]
        assert row.amount == -40
        assert row.metadata["requested_amount"] == 100
        assert row.metadata["shortfall"] == 60

    def test_insufficient_credits_body(self, db):
        account = CreditAccountFactory(balance=400)

        with pytest.raises(InsufficientCredits) as exc_info:
            CreditService.deduct(account.id, 600, ActionKind.IMAGE_GENERATE)

        body = exc_info.value.to_dict()
        assert body["error"] == "Insufficient credits"
        assert body["error_code"] == "INSUFFICIENT_CREDITS"
        assert body["required"] == 600
        assert body["current"] == 400
        assert exc_info.value.status_code == 402


class TestAdminBypass:
    def test_admin_with_zero_balance_is_not_blocked(self, admin_account):
        """
        Given an admin account with balance 0
        When deducting 500 for chat
        Then it succeeds, balance stays 0 and one admin_usage row of 0 is written
        """
        rows_before = len(_rows(admin_account))

        result = CreditService.deduct(admin_account.id, 500, ActionKind.CHAT)

        admin_account.refresh_from_db()
        assert result.success is True
        assert result.is_admin is True
        assert result.charged == 0
        assert result.new_balance == 0
        assert admin_account.balance == 0

        rows = _rows(admin_account)
        assert len(rows) == rows_before + 1
        assert rows[-1].kind == TransactionKind.ADMIN_USAGE
        assert rows[-1].amount == 0
        assert rows[-1].action_tag == "chat"
        assert rows[-1].metadata["requested_amount"] == 500

    def test_admin_check_balance_always_sufficient(self, admin_account):
        check = CreditService.check_balance(admin_account.id, 10**9)

        assert check.sufficient is True
        assert check.is_admin is True

    def test_promote_writes_audit_row(self, account):
        promoted = CreditService.promote_to_admin(account.id, "support lead", actor="ops@example.com")

        assert promoted.is_admin is True
        row = _rows(account)[-1]
        assert row.kind == TransactionKind.ADMIN_USAGE
        assert row.action_tag == "admin-promote"
        assert row.amount == 0
        assert row.note == "support lead"
        assert row.metadata == {"actor": "ops@example.com"}

    def test_promote_twice_is_noop(self, admin_account):
        rows_before = len(_rows(admin_account))

        CreditService.promote_to_admin(admin_account.id, "again")

        assert len(_rows(admin_account)) == rows_before

    def test_demote_restores_enforcement(self, admin_account):
        CreditService.demote_from_admin(admin_account.id, "left the team")

        with pytest.raises(InsufficientCredits):
            CreditService.deduct(admin_account.id, 1, ActionKind.CHAT)
        assert _rows(admin_account)[-1].action_tag == "admin-demote"

    def test_promote_requires_reason(self, account):
        with pytest.raises(ValidationError):
            CreditService.promote_to_admin(account.id, "")

        account.refresh_from_db()
        assert account.is_admin is False


# =============================================================================
# Check Balance
# =============================================================================


class TestCheckBalance:
    def test_sufficient(self, account):
        check = CreditService.check_balance(account.id, 1000)

        assert check.sufficient is True
        assert check.current_balance == 1000

    def test_insufficient(self, account):
        check = CreditService.check_balance(account.id, 1001)

        assert check.sufficient is False

    def test_does_not_write(self, account):
        CreditService.check_balance(account.id, 5000)

        assert len(_rows(account)) == 1


# =============================================================================
# Grants, Resets, Adjustments
# =============================================================================


class TestGrant:
    def test_grant_adds_credits(self, account):
        result = CreditService.grant(account.id, 250, TransactionKind.REFUND, "failed render")

        assert result.new_balance == 1250
        row = _rows(account)[-1]
        assert row.kind == TransactionKind.REFUND
        assert row.amount == 250

    @pytest.mark.parametrize("amount", [0, -5])
    def test_rejects_non_positive(self, account, amount):
        with pytest.raises(ValidationError):
            CreditService.grant(account.id, amount)

    def test_rejects_deduction_kind(self, account):
        with pytest.raises(ValidationError):
            CreditService.grant(account.id, 10, TransactionKind.DEDUCTION)


class TestResetToTierAllowance:
    def test_reset_discards_rollover(self, starter_account):
        """
        Given a starter account with 5 credits left
        When the monthly reset runs
        Then the balance is exactly 25000 and the row holds the delta
        """
        result = CreditService.reset_to_tier_allowance(starter_account.id, Tier.STARTER)

        assert result.new_balance == 25000
        row = _rows(starter_account)[-1]
        assert row.kind == TransactionKind.SUBSCRIPTION_CREDIT
        assert row.amount == 24995
        assert row.metadata["allowance"] == 25000
        assert row.metadata["previous_balance"] == 5

    def test_reset_can_lower_balance(self, db):
        account = CreditAccountFactory(balance=3000)

        CreditService.reset_to_tier_allowance(account.id, Tier.FREE)

        account.refresh_from_db()
        assert account.balance == 1000
        assert _rows(account)[-1].amount == -2000

    def test_reset_is_idempotent_in_balance(self, account):
        CreditService.reset_to_tier_allowance(account.id, Tier.FREE)
        CreditService.reset_to_tier_allowance(account.id, Tier.FREE)

        account.refresh_from_db()
        assert account.balance == 1000
        assert _rows(account)[-1].amount == 0

    def test_unknown_tier_writes_nothing(self, account):
        with pytest.raises(UnknownTier):
            CreditService.reset_to_tier_allowance(account.id, "platinum")

        assert len(_rows(account)) == 1


class TestAdjust:
    def test_positive_adjustment_is_bonus(self, account):
        result = CreditService.adjust(account.id, 50, "goodwill", actor="ops")

        assert result.new_balance == 1050
        row = _rows(account)[-1]
        assert row.kind == TransactionKind.BONUS
        assert row.metadata == {"actor": "ops"}

    def test_negative_adjustment_is_tagged_deduction(self, account):
        result = CreditService.adjust(account.id, -200, "duplicate grant")

        assert result.new_balance == 800
        row = _rows(account)[-1]
        assert row.kind == TransactionKind.DEDUCTION
        assert row.action_tag == ADMIN_ADJUSTMENT_TAG

    def test_negative_adjustment_respects_floor(self, account):
        with pytest.raises(InsufficientCredits):
            CreditService.adjust(account.id, -1001, "too much")

    def test_requires_note(self, account):
        with pytest.raises(ValidationError):
            CreditService.adjust(account.id, 10, "")

    def test_rejects_zero(self, account):
        with pytest.raises(ValidationError):
            CreditService.adjust(account.id, 0, "nothing")


# =============================================================================
# Replay and Atomicity
# =============================================================================


class TestReplay:
    def test_scenario_free_account_two_images(self, account):
        """
        Given a free account with 1000
        When generating an image (600) twice
        Then the first succeeds leaving 400 and the second fails with required=600, current=400
        """
        first = CreditService.deduct(account.id, 600, ActionKind.IMAGE_GENERATE)
        assert first.new_balance == 400

        with pytest.raises(InsufficientCredits) as exc_info:
            CreditService.deduct(account.id, 600, ActionKind.IMAGE_GENERATE)

        assert exc_info.value.required == 600
        assert exc_info.value.current == 400
        assert CreditService.verify_replay(account.id).consistent

    def test_replay_after_mixed_operations(self, starter_account):
        CreditService.deduct(starter_account.id, 5, ActionKind.CHAT)
        CreditService.grant(starter_account.id, 100, TransactionKind.PURCHASE)
        CreditService.reset_to_tier_allowance(starter_account.id, Tier.STARTER)
        CreditService.adjust(starter_account.id, -10, "correction")

        report = CreditService.verify_replay(starter_account.id)

        assert report.balance == 24990
        assert report.replayed == 24990
        assert report.consistent is True

    def test_randomized_interleaving_keeps_invariants(self, db):
        rng = random.Random(20240601)
        accounts = [CreditAccountFactory(balance=rng.randint(0, 500)) for _ in range(3)]
        actions = [kind.value for kind in ActionKind]

        for _ in range(200):
            target = rng.choice(accounts)
            roll = rng.random()
            try:
                if roll < 0.6:
                    CreditService.deduct(target.id, rng.randint(0, 300), rng.choice(actions))
                elif roll < 0.85:
                    CreditService.grant(target.id, rng.randint(1, 200))
                elif roll < 0.95:
                    CreditService.reset_to_tier_allowance(target.id, Tier.FREE)
                else:
                    CreditService.deduct(target.id, 10**6, ActionKind.CHAT, cap_at_balance=True)
            except InsufficientCredits:
                pass

            target.refresh_from_db()
            assert target.balance >= 0

        for account in accounts:
            report = CreditService.verify_replay(account.id)
            assert report.consistent, report
            sequences = [row.sequence for row in _rows(account)]
            assert sequences == list(range(1, len(sequences) + 1))
            assert all(row.balance_after >= 0 for row in _rows(account))

    def test_database_failure_rolls_back(self, account):
        with patch(
            "credits.store.CreditTransaction.objects.create",
            side_effect=DatabaseError("connection lost"),
        ):
            with pytest.raises(LedgerUnavailable) as exc_info:
                CreditService.deduct(account.id, 100, ActionKind.CHAT)

        assert exc_info.value.is_retryable is True
        account.refresh_from_db()
        assert account.balance == 1000
        assert account.last_sequence == 1
        assert CreditService.verify_replay(account.id).consistent


# =============================================================================
# Queries
# =============================================================================


class TestQueries:
    def test_get_transactions_newest_first(self, account):
        CreditService.deduct(account.id, 10, ActionKind.CHAT)
        CreditService.deduct(account.id, 20, ActionKind.CHAT)

        rows = CreditService.get_transactions(account.id, limit=2)

        assert [row.amount for row in rows] == [-20, -10]

    def test_usage_summary_per_action(self, account, admin_account):
        CreditService.deduct(account.id, 600, ActionKind.IMAGE_GENERATE)
        CreditService.deduct(account.id, 30, ActionKind.CHAT)
        CreditService.deduct(admin_account.id, 600, ActionKind.IMAGE_GENERATE)

        summary = {row["action"]: row for row in CreditService.usage_summary()}

        assert summary["image-generate"] == {"action": "image-generate", "uses": 2, "credits": 600}
        assert summary["chat"]["credits"] == 30

    def test_accounts_never_negative_in_database(self, db):
        CreditAccountFactory(balance=0)

        assert not CreditAccount.objects.filter(balance__lt=0).exists()
