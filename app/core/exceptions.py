"""
Application error base classes.

Every error a service raises on purpose derives from
BaseApplicationError and carries an HTTP status, so views render them
with one ``except`` clause:

    except BaseApplicationError as e:
        return Response(e.to_dict(), status=e.status_code)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    default_error_code: str = "APPLICATION_ERROR"
    status_code: int = 400
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """``{"error", "error_code"}`` plus ``details`` when there are any."""
        body: dict[str, Any] = {"error": self.message, "error_code": self.error_code}
        if self.details:
            body["details"] = self.details
        return body

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


class ValidationError(BaseApplicationError):
    """
    Bad arguments caught below the serializer layer: negative amounts,
    unknown action kinds, tiers that can't be bought.
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    default_error_code: str = "NOT_FOUND"
    status_code: int = 404


class ConflictError(BaseApplicationError):
    """The request clashes with stored state, e.g. rewriting an append-only row."""

    default_error_code: str = "CONFLICT"
    status_code: int = 409
