"""Coupon DTOs (Pydantic v2, immutable)."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from modules.coupons.constants import DiscountType


class AppliedCoupon(BaseModel):
    """A coupon that passed every rule, with the discount it grants."""

    model_config = ConfigDict(frozen=True)

    coupon_id: UUID
    code: str
    description: str
    discount_type: DiscountType
    discount_value: Decimal
    discount: Decimal


class ActiveCouponDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    description: str
    discount_type: DiscountType
    discount_value: Decimal
    min_order_value: Optional[Decimal] = None
    max_discount: Optional[Decimal] = None
