"""HTTP translation of domain and framework errors.

``error_response`` maps a ``DomainError`` to a DRF ``Response`` using its
``kind``.  ``api_exception_handler`` is installed as DRF's
``EXCEPTION_HANDLER`` and gives framework errors (auth, throttling,
parse errors) the same ``{"error": ...}`` body shape.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import structlog
from rest_framework import status
from rest_framework.exceptions import (
    APIException,
    AuthenticationFailed,
    NotAuthenticated,
    ValidationError,
)
from rest_framework.response import Response
from rest_framework.views import exception_handler

from modules.core.throttling import RateLimited
from shared.domain.errors import DomainError, ErrorKind

logger = structlog.get_logger(__name__)

KIND_TO_STATUS: Dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_TRANSITION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVARIANT_VIOLATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_CANCELLABLE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.COUPON_INVALID: status.HTTP_400_BAD_REQUEST,
    ErrorKind.PAYMENT_VERIFICATION_FAILED: status.HTTP_400_BAD_REQUEST,
    ErrorKind.CONFIG_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.UPSTREAM_ERROR: status.HTTP_502_BAD_GATEWAY,
}


def error_response(
    exc: DomainError, extra: Optional[Dict[str, Any]] = None
) -> Response:
    """Build the HTTP response for a domain error."""
    http_status = KIND_TO_STATUS.get(exc.kind, status.HTTP_400_BAD_REQUEST)
    body: Dict[str, Any] = {"error": exc.message or "Request failed", "kind": exc.kind.value}
    if exc.kind is ErrorKind.CONFLICT:
        body["conflict"] = True
    if extra:
        body.update(extra)

    log = logger.bind(kind=exc.kind.value, status_code=http_status)
    if http_status >= 500:
        log.error("api.domain_error", error=exc.message)
    else:
        log.info("api.domain_error", error=exc.message)
    return Response(body, status=http_status)


def validation_error_response(message: str, **extra: Any) -> Response:
    """400 for boundary validation failures (logged at info, never error)."""
    logger.info("api.validation_failed", error=message)
    return Response({"error": message, **extra}, status=status.HTTP_400_BAD_REQUEST)


def flatten_detail(detail: Any) -> str:
    if isinstance(detail, dict):
        parts = [f"{field}: {flatten_detail(value)}" for field, value in detail.items()]
        return "; ".join(parts)
    if isinstance(detail, list):
        return "; ".join(flatten_detail(item) for item in detail)
    return str(detail)


def api_exception_handler(exc: Exception, context: Dict[str, Any]) -> Optional[Response]:
    if isinstance(exc, DomainError):
        return error_response(exc)

    response = exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, (NotAuthenticated, AuthenticationFailed)):
        response.status_code = status.HTTP_401_UNAUTHORIZED
    if isinstance(exc, RateLimited):
        for header, value in exc.rate_limit_headers().items():
            response[header] = value

    if isinstance(exc, ValidationError):
        message = flatten_detail(exc.detail)
    elif isinstance(exc, APIException):
        message = str(exc.detail)
    else:
        message = flatten_detail(response.data)

    response.data = {"error": message}
    return response
