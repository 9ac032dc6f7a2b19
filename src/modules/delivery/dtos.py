"""Delivery DTOs."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class DeliveryQuote(BaseModel):
    """Zone-priced charge for a resolved pincode."""

    model_config = ConfigDict(frozen=True)

    charge: Decimal
    is_free_shipping: bool
    zone: str


class DeliveryEstimate(BaseModel):
    """What checkout shows: a quote plus the delivery date and fallback flag."""

    model_config = ConfigDict(frozen=True)

    charge: Decimal
    is_free_shipping: bool
    zone: str
    estimated_delivery_date: date
    is_standard_charge: bool = False


class UpdateDeliverySettingsDTO(BaseModel):
    """Partial update; ``None`` leaves the field untouched."""

    model_config = ConfigDict(frozen=True)

    business_pincode: Optional[str] = None
    business_city: Optional[str] = None
    business_state: Optional[str] = None
    business_latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    business_longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    local_delivery_charge: Optional[Decimal] = Field(default=None, ge=0)
    city_delivery_charge: Optional[Decimal] = Field(default=None, ge=0)
    state_delivery_charge: Optional[Decimal] = Field(default=None, ge=0)
    national_delivery_charge: Optional[Decimal] = Field(default=None, ge=0)
    free_shipping_threshold: Optional[Decimal] = Field(default=None, ge=0)
    free_shipping_enabled: Optional[bool] = None
