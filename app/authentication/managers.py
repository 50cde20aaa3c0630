"""
User manager keyed on email.

Passwords go through set_password(); the domain part of the email is
lower-cased by normalize_email().
"""

from django.contrib.auth.models import BaseUserManager


class UserManager(BaseUserManager):
    """Creates users and superusers that log in with their email."""

    def _build(self, email, password, **fields):
        if not email:
            raise ValueError("The Email field must be set")

        user = self.model(email=self.normalize_email(email), **fields)
        # No password means the account can't log in until one is set
        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()
        user.save(using=self._db)
        return user

    def create_user(self, email, password=None, **extra_fields):
        """Create a regular, non-staff user. Raises ValueError without an email."""
        extra_fields.setdefault("is_staff", False)
        extra_fields.setdefault("is_superuser", False)
        return self._build(email, password, **extra_fields)

    def create_superuser(self, email, password=None, **extra_fields):
        """
        Create a Django admin superuser.

        Django admin access does not make the account a credit admin;
        use ``promote_admins`` or ``CreditService.promote_to_admin`` for
        charge bypass.
        """
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)
        extra_fields.setdefault("email_verified", True)

        for flag in ("is_staff", "is_superuser"):
            if extra_fields[flag] is not True:
                raise ValueError(f"Superuser must have {flag}=True.")

        return self._build(email, password, **extra_fields)
