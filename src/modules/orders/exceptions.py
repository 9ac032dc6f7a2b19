"""Order domain exceptions.

Raised by the Service Layer when business rules are violated.  Each
carries an ``ErrorKind`` so the API layer maps it to an HTTP response
without inspecting the message.
"""

from __future__ import annotations

from shared.domain.errors import DomainError, ErrorKind


class OrderNotFound(DomainError):
    """The requested order does not exist (or belongs to another customer)."""

    kind = ErrorKind.NOT_FOUND


class InvalidTransition(DomainError):
    """A status transition outside the state machine was attempted."""

    kind = ErrorKind.INVALID_TRANSITION


class OrderConflict(DomainError):
    """The order changed since the caller read it (version mismatch)."""

    kind = ErrorKind.CONFLICT


class OrderNotCancellable(DomainError):
    """The order is already in fulfilment or terminal."""

    kind = ErrorKind.NOT_CANCELLABLE


class MoneyInvariantViolation(DomainError):
    """Order amounts do not reconcile."""

    kind = ErrorKind.INVARIANT_VIOLATION


class InvalidOrderData(DomainError):
    """Order payload failed boundary validation (address, items, enums)."""

    kind = ErrorKind.VALIDATION
