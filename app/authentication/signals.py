"""
Opens a free-tier credit account, funded by an opening ledger row, for
every user created (see CreditService.open_account).
"""

import logging

from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver

logger = logging.getLogger(__name__)


@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def open_credit_account(sender, instance, created, raw=False, **kwargs):
    """
    Open the credit account for a newly created user.

    Runs inside the transaction that saved the user, so a failed
    account creation rolls the user back too. Fixture loading
    (``raw=True``) is skipped.
    """
    if not created or raw:
        return

    from credits.services import CreditService

    account = CreditService.open_account(instance)
    logger.info(
        "Credit account opened for new user",
        extra={"user_id": str(instance.pk), "account_id": str(account.id)},
    )
