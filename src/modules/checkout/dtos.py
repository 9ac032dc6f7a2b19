"""Checkout DTOs.

``CheckoutOrderDTO`` is the cart as submitted by the client.  Its amounts
are claims: ``CheckoutService`` recomputes every one of them and rejects
the checkout when the client's total disagrees.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from modules.coupons.dtos import AppliedCoupon
from modules.orders.constants import PaymentMethod
from modules.orders.dtos import CreateOrderItemDTO, ShippingAddressDTO

if TYPE_CHECKING:
    from modules.orders.models import Order


class CheckoutOrderDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    items: List[CreateOrderItemDTO] = Field(min_length=1)
    shipping_address: ShippingAddressDTO
    payment_method: PaymentMethod
    coupon_code: Optional[str] = None
    total: Optional[Decimal] = None
    notes: str = ""


class PricingBreakdown(BaseModel):
    """Server-side pricing of a cart."""

    model_config = ConfigDict(frozen=True)

    subtotal: Decimal
    discount: Decimal
    coupon: Optional[AppliedCoupon] = None
    delivery_charge: Decimal
    delivery_zone: str
    is_standard_charge: bool = False
    estimated_delivery_date: Optional[date] = None
    tax: Decimal
    total: Decimal


class PaymentIntentDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: Optional[str]
    amount: Decimal
    currency: str
    key_id: Optional[str] = None
    payment_method: PaymentMethod
    message: Optional[str] = None


@dataclass(frozen=True)
class PlacedOrder:
    """The order a checkout resolved to; ``created`` is False on a replay."""

    order: Order
    created: bool = True
