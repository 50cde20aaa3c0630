"""
Abstract models shared by the credits and billing apps.

List UUIDPrimaryKeyMixin before BaseModel when combining them.
"""

from __future__ import annotations

import uuid

from django.db import models


class UUIDPrimaryKeyMixin(models.Model):
    """Random UUID primary key; account and ledger ids are exposed in the API and Stripe metadata."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    class Meta:
        abstract = True


class BaseModel(models.Model):
    """created_at / updated_at bookkeeping, newest first."""

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{type(self).__name__}({self.pk})"
