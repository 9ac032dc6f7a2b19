"""Structured error taxonomy shared by every bounded context.

Domain exceptions carry a ``kind`` discriminant so callers (views,
tasks, other services) branch on a stable enum value instead of the
human-readable message.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INVALID_TRANSITION = "invalid_transition"
    INVARIANT_VIOLATION = "invariant_violation"
    NOT_CANCELLABLE = "not_cancellable"
    COUPON_INVALID = "coupon_invalid"
    PAYMENT_VERIFICATION_FAILED = "payment_verification_failed"
    CONFIG_ERROR = "config_error"
    UPSTREAM_ERROR = "upstream_error"


class DomainError(Exception):
    """Base class for expected, typed failures raised by the service layer."""

    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str = "", **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        return self.message

    def is_kind(self, kind: ErrorKind) -> bool:
        return self.kind is kind


def error_kind_of(exc: BaseException) -> Optional[ErrorKind]:
    """Return the ``ErrorKind`` of *exc* or ``None`` for foreign exceptions."""
    return getattr(exc, "kind", None) if isinstance(exc, DomainError) else None
