"""
Tests for AppendOnlyManager and BaseQuerySet.

CreditTransaction is the append-only model used here; the credits app
tests cover its model-level save/delete guards.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from django.utils import timezone
from freezegun import freeze_time

from core.managers import AppendOnlyManager, ImmutableRecordError
from credits.models import CreditTransaction
from credits.services import CreditService
from credits.tests.factories import CreditAccountFactory


@pytest.fixture
def ledger_rows(db):
    """An account whose ledger holds an opening row and one grant."""
    account = CreditAccountFactory()
    CreditService.grant(account.id, 50, note="welcome bonus")
    return CreditTransaction.objects.filter(account=account)


class TestAppendOnlyQuerySet:
    def test_manager_type(self):
        assert isinstance(CreditTransaction.objects, AppendOnlyManager)

    def test_bulk_update_rejected(self, ledger_rows):
        with pytest.raises(ImmutableRecordError) as exc_info:
            ledger_rows.update(note="rewritten")

        assert exc_info.value.error_code == "IMMUTABLE_RECORD"
        assert exc_info.value.status_code == 409

    def test_bulk_delete_rejected(self, ledger_rows):
        count = ledger_rows.count()

        with pytest.raises(ImmutableRecordError):
            ledger_rows.delete()

        assert ledger_rows.count() == count

    def test_bulk_update_objects_rejected(self, ledger_rows):
        rows = list(ledger_rows)
        for row in rows:
            row.note = "rewritten"

        with pytest.raises(ImmutableRecordError):
            CreditTransaction.objects.bulk_update(rows, ["note"])

    def test_reads_still_work(self, ledger_rows):
        assert ledger_rows.count() == 2
        assert ledger_rows.filter(amount=50).exists()


class TestCreatedSince:
    def test_filters_by_creation_time(self, db):
        with freeze_time(timezone.now() - timedelta(days=10)):
            old_account = CreditAccountFactory()
        new_account = CreditAccountFactory()
        cutoff = timezone.now() - timedelta(days=1)

        recent = CreditTransaction.objects.created_since(cutoff)

        assert recent.filter(account=new_account).exists()
        assert not recent.filter(account=old_account).exists()
