"""
Service layer primitives.

Services are classes of classmethods. Outcomes a caller is expected to
handle (a webhook for an unknown customer, a payload missing its
subscription) come back as a failed ServiceResult; broken invariants
and infrastructure faults are raised.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Iterator

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Success flag plus either ``data`` or ``error``/``error_code``.

    Truthy when successful:

        result = BillingReconciler.apply_subscription_deleted(event_id, obj)
        if not result:
            logger.warning(result.error, extra={"error_code": result.error_code})
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, error: str, error_code: str | None = None) -> ServiceResult[T]:
        return cls(success=False, error=error, error_code=error_code)

    @classmethod
    def from_exception(cls, exc: Exception, error_code: str | None = None) -> ServiceResult[T]:
        """
        Failed result from ``exc``. Application errors lend their message
        and code; other exceptions use the upper-cased class name.
        """
        return cls.failure(
            getattr(exc, "message", None) or str(exc),
            error_code=error_code or getattr(exc, "error_code", None) or type(exc).__name__.upper(),
        )

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Logger named ``<module>.<ServiceClass>``."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Iterator[None]:
        with transaction.atomic():
            yield

    @classmethod
    def handle_exception(cls, exc: Exception, context: str = "", log_level: int = logging.ERROR) -> ServiceResult:
        """Log ``exc`` (with traceback at ERROR and above) and return it as a failure."""
        message = f"{context}: {exc}" if context else str(exc)
        cls.get_logger().log(log_level, message, exc_info=log_level >= logging.ERROR)
        return ServiceResult.from_exception(exc)
