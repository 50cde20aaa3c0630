"""
DRF serializers for the credits app.

Provides:
- CreditAccountSerializer: Balance, tier and status of the caller's account
- CreditTransactionSerializer: One ledger row
- CostTableEntrySerializer: One row of the action cost table
- QuoteRequestSerializer / QuoteSerializer: Cost estimate for a paid action
- GrantSerializer / PromoteSerializer: Admin console operations
- UsageSummarySerializer: Admin usage statistics
"""

from __future__ import annotations

from typing import Any

from drf_spectacular.utils import OpenApiExample, extend_schema_serializer
from rest_framework import serializers

from credits.costs import ActionKind
from credits.models import GRANT_KINDS, CreditAccount, CreditTransaction, TransactionKind


# =============================================================================
# Account & Ledger Serializers
# =============================================================================


@extend_schema_serializer(
    examples=[
        OpenApiExample(
            "Pro account",
            value={
                "id": "0b8f6c1e-5a3d-4c1f-9d6e-2f7a8b9c0d1e",
                "balance": 73540,
                "tier": "pro",
                "tier_status": "active",
                "period_end": "2026-11-18T09:00:00Z",
                "is_admin": False,
            },
            response_only=True,
        ),
    ]
)
class CreditAccountSerializer(serializers.ModelSerializer):
    """Read-only view of a credit account."""

    class Meta:
        model = CreditAccount
        fields = [
            "id",
            "balance",
            "tier",
            "tier_status",
            "period_end",
            "is_admin",
        ]
        read_only_fields = fields


class CreditTransactionSerializer(serializers.ModelSerializer):
    """Read-only ledger row."""

    class Meta:
        model = CreditTransaction
        fields = [
            "id",
            "sequence",
            "amount",
            "balance_after",
            "kind",
            "action_tag",
            "note",
            "created_at",
        ]
        read_only_fields = fields


class CostTableEntrySerializer(serializers.Serializer):
    action = serializers.CharField(help_text="Paid action identifier")
    label = serializers.CharField(help_text="Display name of the action")
    cost = serializers.IntegerField(help_text="Base credits per unit")


# =============================================================================
# Quote Serializers
# =============================================================================


class QuoteRequestSerializer(serializers.Serializer):
    """
    Request body for a cost estimate.

    ``duration_seconds`` applies to video generation and audio
    transcription, ``characters`` to speech generation.
    """

    action = serializers.ChoiceField(choices=ActionKind.choices)
    quantity = serializers.IntegerField(min_value=1, default=1)
    duration_seconds = serializers.IntegerField(min_value=1, required=False)
    characters = serializers.IntegerField(min_value=1, required=False)


class QuoteSerializer(serializers.Serializer):
    action = serializers.CharField()
    cost = serializers.IntegerField(help_text="Estimated credits for the action")
    balance = serializers.IntegerField(help_text="Current balance of the caller")
    allowed = serializers.BooleanField(help_text="Whether the action would pass the gate")
    is_admin = serializers.BooleanField()


# =============================================================================
# Admin Serializers
# =============================================================================


class GrantSerializer(serializers.Serializer):
    """
    Admin grant or adjustment.

    A positive ``amount`` with a grant ``kind`` is a plain grant. A
    negative amount is an adjustment and requires a note.
    """

    amount = serializers.IntegerField()
    kind = serializers.ChoiceField(
        choices=[(kind.value, kind.label) for kind in TransactionKind if kind in GRANT_KINDS],
        default=TransactionKind.BONUS,
    )
    note = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:
        if attrs["amount"] == 0:
            raise serializers.ValidationError({"amount": "Amount cannot be zero."})
        if attrs["amount"] < 0 and not attrs["note"]:
            raise serializers.ValidationError({"note": "A note is required for negative adjustments."})
        return attrs


class PromoteSerializer(serializers.Serializer):
    is_admin = serializers.BooleanField(default=True)
    reason = serializers.CharField(max_length=500)


class UsageRowSerializer(serializers.Serializer):
    action = serializers.CharField()
    uses = serializers.IntegerField()
    credits = serializers.IntegerField()


class UsageSummarySerializer(serializers.Serializer):
    """Platform usage statistics for the admin dashboard."""

    usage = UsageRowSerializer(many=True)
    subscriptions = serializers.DictField(
        child=serializers.IntegerField(),
        help_text="Number of accounts per tier",
    )
