"""Coupon domain exceptions.

Every rejection is a ``CouponError`` with a ``CouponErrorCode`` naming
the failed rule; the message is the customer-facing text.
"""

from __future__ import annotations

from enum import Enum

from shared.domain.errors import DomainError, ErrorKind


class CouponErrorCode(str, Enum):
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    NOT_YET_VALID = "not_yet_valid"
    EXPIRED = "expired"
    MIN_ORDER_NOT_MET = "min_order_not_met"
    USAGE_LIMIT_REACHED = "usage_limit_reached"
    PER_USER_LIMIT_REACHED = "per_user_limit_reached"


class CouponError(DomainError):
    """The coupon cannot be applied to this order."""

    kind = ErrorKind.COUPON_INVALID

    def __init__(self, code: CouponErrorCode, message: str, **context) -> None:
        super().__init__(message, **context)
        self.code = code
