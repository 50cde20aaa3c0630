"""
DRF serializers for the billing app.

Provides:
- CheckoutRequestSerializer: Tier to subscribe to
- CheckoutSessionSerializer: Hosted checkout URL
"""

from __future__ import annotations

from rest_framework import serializers

from credits.entitlements import PAID_TIERS


class CheckoutRequestSerializer(serializers.Serializer):
    tier = serializers.ChoiceField(
        choices=[(tier.value, tier.label) for tier in PAID_TIERS],
        help_text="Paid tier to subscribe to",
    )


class CheckoutSessionSerializer(serializers.Serializer):
    session_id = serializers.CharField(help_text="Stripe Checkout Session ID")
    url = serializers.URLField(help_text="Hosted checkout page to redirect to")
