"""
Entitlement resolution: tiers, allowances and tier status transitions.

Pure lookups over the tier allowance table plus the mapping between
Stripe prices/statuses and internal tiers/statuses.

Configuration (via settings):
- CREDIT_TIER_ALLOWANCES: optional per-tier overrides of TIER_ALLOWANCES
- STRIPE_PRICE_STARTER / STRIPE_PRICE_PRO / STRIPE_PRICE_BUSINESS:
  Stripe Price IDs for the paid tiers

Usage:
    from credits.entitlements import allowance_for, resolve_tier_for_billing_plan

    allowance_for("pro")                          # 100000
    resolve_tier_for_billing_plan("price_123")    # Tier.PRO or None
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.conf import settings
from django_fsm import TransitionNotAllowed, can_proceed

from credits.exceptions import InvalidTierTransition, UnknownTier
from credits.models import Tier, TierStatus

if TYPE_CHECKING:
    from credits.models import CreditAccount

logger = logging.getLogger(__name__)


TIER_ALLOWANCES: dict[str, int] = {
    Tier.FREE: 1000,
    Tier.STARTER: 25000,
    Tier.PRO: 100000,
    Tier.BUSINESS: 500000,
}

PAID_TIERS = (Tier.STARTER, Tier.PRO, Tier.BUSINESS)

# Settings attribute holding the Stripe Price ID for each paid tier
_PRICE_SETTINGS = {
    Tier.STARTER: "STRIPE_PRICE_STARTER",
    Tier.PRO: "STRIPE_PRICE_PRO",
    Tier.BUSINESS: "STRIPE_PRICE_BUSINESS",
}

# Stripe subscription.status -> TierStatus; anything unlisted is INACTIVE
_BILLING_STATUS_MAP = {
    "active": TierStatus.ACTIVE,
    "trialing": TierStatus.ACTIVE,
    "past_due": TierStatus.PAST_DUE,
    "canceled": TierStatus.CANCELED,
}

# TierStatus target -> CreditAccount FSM transition method
_STATUS_TRANSITIONS = {
    TierStatus.ACTIVE: "activate",
    TierStatus.PAST_DUE: "mark_past_due",
    TierStatus.CANCELED: "cancel",
    TierStatus.INACTIVE: "deactivate",
}


def validate_tier(tier: str) -> Tier:
    """
    Return ``tier`` as a Tier member.

    Raises:
        UnknownTier: If the string is not a known tier
    """
    try:
        return Tier(tier)
    except ValueError:
        raise UnknownTier(str(tier))


def allowance_for(tier: str) -> int:
    """
    Monthly credit allowance for a tier.

    Raises:
        UnknownTier: For unmapped tier strings
    """
    tier = validate_tier(tier)
    overrides = getattr(settings, "CREDIT_TIER_ALLOWANCES", None) or {}
    if tier.value in overrides:
        return int(overrides[tier.value])
    return TIER_ALLOWANCES[tier]


def price_for_tier(tier: str) -> str | None:
    """Stripe Price ID configured for a paid tier, or None if unset or free."""
    tier = validate_tier(tier)
    setting_name = _PRICE_SETTINGS.get(tier)
    if setting_name is None:
        return None
    return getattr(settings, setting_name, "") or None


def resolve_tier_for_billing_plan(plan_ref: str | None) -> Tier | None:
    """
    Map a Stripe Price ID back to an internal tier.

    Returns None for empty or unmapped price ids; callers treat that as
    "nothing to reconcile".
    """
    if not plan_ref:
        return None
    for tier in PAID_TIERS:
        if price_for_tier(tier) == plan_ref:
            return tier
    logger.info("Billing plan does not map to a tier", extra={"plan_ref": plan_ref})
    return None


def map_billing_status(billing_status: str | None) -> TierStatus:
    """Map a Stripe subscription status onto TierStatus."""
    return _BILLING_STATUS_MAP.get(billing_status or "", TierStatus.INACTIVE)


def can_transition(account: CreditAccount, target: str) -> bool:
    """Whether the account's FSM allows moving to ``target``."""
    method_name = _STATUS_TRANSITIONS.get(TierStatus(target))
    return can_proceed(getattr(account, method_name))


def transition_status(account: CreditAccount, target: str) -> bool:
    """
    Move ``account.tier_status`` to ``target`` through its FSM transition.

    Does not save. Returns True when the status actually changed and
    False for a same-status replay.

    Raises:
        InvalidTierTransition: If the transition table forbids the move
    """
    target = TierStatus(target)
    current = account.tier_status
    try:
        getattr(account, _STATUS_TRANSITIONS[target])()
    except TransitionNotAllowed as e:
        raise InvalidTierTransition(current, target, account_id=account.id) from e
    return current != target
