"""
Credits app: the prepaid credit ledger behind every paid tool.

Related apps:
    - authentication: Registration opens a free credit account
    - billing: Stripe webhooks reconcile tiers and monthly allowances

Usage:
    from credits.services import credit_service
    from credits.gate import ActionGate

    decision = ActionGate.guard(account.id, 600)
    credit_service.deduct(account.id, 600, "image-generate")
"""
