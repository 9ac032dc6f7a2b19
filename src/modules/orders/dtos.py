"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.  These are
the contracts between the API layer and the Service layer.  DTOs are
immutable (``frozen=True``).

Money reconciliation is **not** checked here: it is the service's job
and fails with ``MoneyInvariantViolation`` rather than a schema error.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from modules.orders.constants import OrderStatus, PaymentMethod, PaymentStatus

# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class ShippingAddressDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    phone: str
    street: str
    city: str
    state: str
    pincode: str
    country: str = "India"
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class CreateOrderItemDTO(BaseModel):
    """Line-item snapshot as priced at checkout."""

    model_config = ConfigDict(frozen=True)

    product_id: UUID
    product_name: str
    product_image: Optional[str] = None
    variant_id: Optional[UUID] = None
    variant_name: Optional[str] = None
    quantity: int
    price: Decimal = Field(ge=0)
    subtotal: Decimal = Field(ge=0)

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1.")
        return v


class CreateOrderDTO(BaseModel):
    """Immutable DTO for order creation (after payment verification)."""

    model_config = ConfigDict(frozen=True)

    customer_id: UUID
    items: List[CreateOrderItemDTO]
    subtotal: Decimal
    discount: Decimal = Decimal("0.00")
    coupon_code: Optional[str] = None
    delivery_charge: Decimal = Decimal("0.00")
    tax: Decimal = Decimal("0.00")
    total: Decimal
    shipping_address: ShippingAddressDTO
    payment_method: PaymentMethod
    payment_id: Optional[str] = None
    gateway_order_id: Optional[str] = None
    idempotency_key: Optional[str] = None
    estimated_delivery_date: Optional[date] = None
    notes: str = ""

    @field_validator("items")
    @classmethod
    def items_must_not_be_empty(
        cls, v: List[CreateOrderItemDTO]
    ) -> List[CreateOrderItemDTO]:
        if not v:
            raise ValueError("Order must have at least one item.")
        return v


class UpdateOrderStatusDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: UUID
    new_status: OrderStatus
    updated_by: Optional[UUID] = None
    notes: Optional[str] = None
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    courier_name: Optional[str] = None
    expected_version: Optional[int] = None


class UpdateTrackingDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: UUID
    tracking_number: str
    tracking_url: Optional[str] = None
    courier_name: Optional[str] = None
    updated_by: Optional[UUID] = None
    expected_version: Optional[int] = None


class CancelOrderDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: UUID
    customer_id: UUID
    reason: Optional[str] = None


class OrderFiltersDTO(BaseModel):
    """Admin list filters; empty lists mean "any"."""

    model_config = ConfigDict(frozen=True)

    statuses: List[OrderStatus] = Field(default_factory=list)
    payment_statuses: List[PaymentStatus] = Field(default_factory=list)
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    search: Optional[str] = None
    customer_id: Optional[UUID] = None
