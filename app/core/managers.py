"""
Custom QuerySet and Manager classes for common patterns.

- BaseQuerySet: created_at window helper used by reporting queries
- AppendOnlyQuerySet/AppendOnlyManager: refuse bulk update and delete,
  for audit tables whose rows must never change after insert

Usage:
    from core.managers import AppendOnlyManager

    class AuditRow(models.Model):
        objects = AppendOnlyManager()

    AuditRow.objects.create(...)      # allowed
    AuditRow.objects.all().delete()   # raises ImmutableRecordError
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import models

from core.exceptions import ConflictError

if TYPE_CHECKING:
    from datetime import datetime


class ImmutableRecordError(ConflictError):
    """Raised when code tries to modify or remove an append-only record."""

    default_error_code: str = "IMMUTABLE_RECORD"


class BaseQuerySet(models.QuerySet):
    """QuerySet with a created_at window helper."""

    def created_since(self, since: datetime) -> BaseQuerySet:
        """Filter to records created at or after ``since``."""
        return self.filter(created_at__gte=since)


class AppendOnlyQuerySet(BaseQuerySet):
    """
    QuerySet for append-only tables.

    Inserts go through ``create``/``bulk_create``; every bulk mutation
    raises ImmutableRecordError.
    """

    def update(self, **kwargs):
        raise ImmutableRecordError(
            f"{self.model.__name__} rows are append-only and cannot be updated",
        )

    def delete(self):
        raise ImmutableRecordError(
            f"{self.model.__name__} rows are append-only and cannot be deleted",
        )

    def bulk_update(self, objs, fields, batch_size=None):
        raise ImmutableRecordError(
            f"{self.model.__name__} rows are append-only and cannot be updated",
        )


class AppendOnlyManager(models.Manager.from_queryset(AppendOnlyQuerySet)):
    """Manager attaching AppendOnlyQuerySet."""
