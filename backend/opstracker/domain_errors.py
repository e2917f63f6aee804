"""Domain-level exception primitives with stable machine-readable codes."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(eq=False)
class DomainError(Exception):
    """Use-case level error with stable code and HTTP mapping."""

    code: str
    http_status: int
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


class _CategorizedError(DomainError):
    """DomainError with per-category defaults for status, code and message."""

    default_status = 400
    default_code = "DOMAIN_ERROR"
    default_message = "Request failed"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code=code or self.default_code,
            http_status=self.default_status,
            message=message or self.default_message,
            details=details,
        )


class ValidationError(_CategorizedError):
    """Missing or malformed input; ``details["errors"]`` lists per-field messages."""

    default_status = 400
    default_code = "VALIDATION_ERROR"
    default_message = "Validation failed"

    @classmethod
    def for_field(cls, field: str, message: str, *, code: str | None = None) -> "ValidationError":
        return cls(message, code=code, details={"errors": [{"field": field, "message": message}]})


class AuthorizationError(_CategorizedError):
    default_status = 403
    default_code = "INSUFFICIENT_PERMISSIONS"
    default_message = "Insufficient permissions"


class NotFoundError(_CategorizedError):
    default_status = 404
    default_code = "NOT_FOUND"
    default_message = "Not found"


class ConflictError(_CategorizedError):
    default_status = 409
    default_code = "CONFLICT"
    default_message = "Conflict"


class InternalError(_CategorizedError):
    default_status = 500
    default_code = "INTERNAL_ERROR"
    default_message = "Internal server error"
