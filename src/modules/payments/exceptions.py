"""Payment domain exceptions."""

from __future__ import annotations

from shared.domain.errors import DomainError, ErrorKind


class PaymentConfigError(DomainError):
    """Gateway credentials are missing or the gateway name is unknown."""

    kind = ErrorKind.CONFIG_ERROR


class PaymentGatewayError(DomainError):
    """The gateway rejected or failed a request."""

    kind = ErrorKind.UPSTREAM_ERROR


class PaymentVerificationFailed(DomainError):
    kind = ErrorKind.PAYMENT_VERIFICATION_FAILED


class PaymentAmountMismatch(DomainError):
    """The captured amount differs from the server-side order total."""

    kind = ErrorKind.INVARIANT_VIOLATION


class PaymentAlreadyRejected(DomainError):
    """This payment was already turned down and is being refunded."""

    kind = ErrorKind.CONFLICT
