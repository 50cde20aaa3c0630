"""
The login identity.

User carries nothing billing related. Balance, tier and the admin flag
sit on credits.CreditAccount, which signals.py opens for each new user.
"""

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models

from authentication.managers import UserManager


class User(AbstractBaseUser, PermissionsMixin):
    """
    Email-addressed account.

    ``is_staff`` only grants the Django admin site; the credit admin
    flag is ``user.credit_account.is_admin``.
    """

    email = models.EmailField(unique=True, db_index=True, max_length=254)
    name = models.CharField(max_length=150, blank=True, default="")
    email_verified = models.BooleanField(default=False)

    is_active = models.BooleanField(
        default=True,
        help_text="Clear to disable login without deleting the ledger",
    )
    is_staff = models.BooleanField(default=False, help_text="Django admin site access")

    date_joined = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        ordering = ["-date_joined"]

    def __str__(self):
        return self.email

    def get_full_name(self):
        return self.name or self.email

    def get_short_name(self):
        local_part, _, _ = self.email.partition("@")
        return self.name or local_part
