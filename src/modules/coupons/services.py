"""Coupon engine.

``validate_and_apply`` checks a code against its activity window, usage
caps and minimum order value, then computes the discount.  It never
consumes a use: ``increment_usage_count`` is called separately, only
after the order has been placed and paid.
"""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any, Callable, List, Optional
from uuid import UUID

import structlog
from django.core.cache import cache as default_cache
from django.db import transaction
from django.utils import timezone

from modules.coupons.constants import COUPON_CACHE_TTL_SECONDS, DiscountType
from modules.coupons.dtos import ActiveCouponDTO, AppliedCoupon
from modules.coupons.exceptions import CouponError, CouponErrorCode

if TYPE_CHECKING:
    from modules.coupons.models import Coupon
    from modules.coupons.repositories.interfaces import ICouponRepository

logger = structlog.get_logger(__name__)

CENTS = Decimal("0.01")
_MISSING = "__missing__"


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def calculate_discount(coupon: Coupon, order_subtotal: Decimal) -> Decimal:
    """Discount for *order_subtotal*, never more than the subtotal itself."""
    subtotal = Decimal(order_subtotal)
    if subtotal <= 0:
        return Decimal("0.00")

    if coupon.discount_type == DiscountType.PERCENTAGE:
        discount = subtotal * Decimal(coupon.discount_value) / Decimal(100)
        if coupon.max_discount is not None:
            discount = min(discount, Decimal(coupon.max_discount))
    else:
        discount = Decimal(coupon.discount_value)

    discount = max(Decimal("0"), min(discount, subtotal))
    return discount.quantize(CENTS, rounding=ROUND_HALF_UP)


class CouponService:
    def __init__(
        self,
        coupon_repository: ICouponRepository,
        cache: Any = None,
        clock: Callable[[], datetime] = timezone.now,
    ) -> None:
        self._coupon_repo = coupon_repository
        self._cache = cache if cache is not None else default_cache
        self._clock = clock

    @staticmethod
    def _cache_key(code: str) -> str:
        return f"coupon:{code}"

    def _lookup(self, code: str) -> Optional[Coupon]:
        key = self._cache_key(code)
        cached = self._cache.get(key)
        if cached == _MISSING:
            return None
        if cached is not None:
            return cached
        coupon = self._coupon_repo.get_by_code(code)
        self._cache.set(
            key, coupon if coupon is not None else _MISSING, COUPON_CACHE_TTL_SECONDS
        )
        return coupon

    def invalidate(self, code: str) -> None:
        self._cache.delete(self._cache_key(normalize_code(code)))

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_and_apply(
        self,
        code: str,
        order_subtotal: Decimal,
        customer_id: Optional[UUID] = None,
    ) -> AppliedCoupon:
        """Apply *code* to *order_subtotal* or raise ``CouponError``.

        Rules are checked in order (existence, active flag, validity
        window, minimum order value, global cap, per-customer cap), so
        the first failing rule names the error.
        """
        normalized = normalize_code(code)
        log = logger.bind(coupon_code=normalized, order_subtotal=str(order_subtotal))

        coupon = self._lookup(normalized)
        if coupon is None:
            return self._reject(log, CouponErrorCode.NOT_FOUND, "Invalid coupon code")

        now = self._clock()
        if not coupon.is_active:
            return self._reject(
                log, CouponErrorCode.INACTIVE, "This coupon is no longer active"
            )
        if now < coupon.valid_from:
            return self._reject(
                log, CouponErrorCode.NOT_YET_VALID, "This coupon is not yet valid"
            )
        if now > coupon.valid_until:
            return self._reject(
                log,
                CouponErrorCode.EXPIRED,
                f"This coupon expired on {coupon.valid_until:%d %b %Y}",
            )
        if coupon.min_order_value is not None and Decimal(order_subtotal) < coupon.min_order_value:
            return self._reject(
                log,
                CouponErrorCode.MIN_ORDER_NOT_MET,
                f"Minimum order value of ₹{coupon.min_order_value} required for this coupon",
            )
        if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
            return self._reject(
                log,
                CouponErrorCode.USAGE_LIMIT_REACHED,
                "This coupon has reached its usage limit",
            )
        if coupon.per_user_limit is not None and customer_id is not None:
            used = self._coupon_repo.count_customer_usages(coupon.id, customer_id)
            if used >= coupon.per_user_limit:
                return self._reject(
                    log,
                    CouponErrorCode.PER_USER_LIMIT_REACHED,
                    "You have already used this coupon the maximum number of times",
                )

        discount = calculate_discount(coupon, order_subtotal)
        log.info("coupon.applied", discount=str(discount))
        return AppliedCoupon(
            coupon_id=coupon.id,
            code=coupon.code,
            description=coupon.description,
            discount_type=coupon.discount_type,
            discount_value=coupon.discount_value,
            discount=discount,
        )

    @staticmethod
    def _reject(log: Any, code: CouponErrorCode, message: str) -> AppliedCoupon:
        log.info("coupon.rejected", reason=code.value)
        raise CouponError(code, message)

    # ------------------------------------------------------------------
    # Usage bookkeeping
    # ------------------------------------------------------------------

    def increment_usage_count(
        self,
        code: str,
        customer_id: Optional[UUID] = None,
        order_id: Optional[UUID] = None,
    ) -> bool:
        """Consume one use after a successful order.

        Best-effort: a failure is logged and reported as ``False`` so it
        can never unwind the order it belongs to.
        """
        normalized = normalize_code(code)
        log = logger.bind(coupon_code=normalized, order_id=str(order_id) if order_id else None)
        try:
            coupon = self._coupon_repo.get_by_code(normalized)
            if coupon is None:
                log.warning("coupon.increment_unknown_code")
                return False
            with transaction.atomic():
                self._coupon_repo.increment_usage(coupon.id)
                if customer_id is not None:
                    self._coupon_repo.record_usage(coupon.id, customer_id, order_id)
        except Exception:
            log.exception("coupon.increment_failed")
            return False
        finally:
            self.invalidate(normalized)

        log.info("coupon.usage_incremented")
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_active_coupons(self) -> List[ActiveCouponDTO]:
        return [
            ActiveCouponDTO(
                code=coupon.code,
                description=coupon.description,
                discount_type=coupon.discount_type,
                discount_value=coupon.discount_value,
                min_order_value=coupon.min_order_value,
                max_discount=coupon.max_discount,
            )
            for coupon in self._coupon_repo.list_active(self._clock())
        ]
