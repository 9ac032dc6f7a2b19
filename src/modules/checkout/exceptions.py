from __future__ import annotations

from shared.domain.errors import DomainError, ErrorKind


class CheckoutTotalMismatch(DomainError):
    """The client's total disagrees with the server-side pricing."""

    kind = ErrorKind.INVARIANT_VIOLATION
