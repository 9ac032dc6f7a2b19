"""Delivery settings singleton.

One row holds the business origin and the four zone charges.  Writes go
through ``DeliveryService.update_settings`` so the cached copy is
invalidated.
"""

from __future__ import annotations

from decimal import Decimal

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from modules.core.models import BaseModel


def _charge_field() -> models.DecimalField:
    return models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
    )


class DeliverySettings(BaseModel):
    business_pincode = models.CharField(max_length=6)
    business_city = models.CharField(max_length=50)
    business_state = models.CharField(max_length=50)
    business_latitude = models.FloatField(
        validators=[MinValueValidator(-90), MaxValueValidator(90)]
    )
    business_longitude = models.FloatField(
        validators=[MinValueValidator(-180), MaxValueValidator(180)]
    )

    local_delivery_charge = _charge_field()
    city_delivery_charge = _charge_field()
    state_delivery_charge = _charge_field()
    national_delivery_charge = _charge_field()

    free_shipping_threshold = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )
    free_shipping_enabled = models.BooleanField(default=False)

    updated_by = models.ForeignKey(
        "accounts.Profile",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        db_table = "delivery_settings"
        verbose_name_plural = "delivery settings"

    def charge_for_zone(self, zone: str) -> Decimal:
        return {
            "local": self.local_delivery_charge,
            "city": self.city_delivery_charge,
            "state": self.state_delivery_charge,
        }.get(zone, self.national_delivery_charge)

    def qualifies_for_free_shipping(self, order_subtotal: Decimal) -> bool:
        return self.free_shipping_enabled and order_subtotal >= self.free_shipping_threshold

    def __str__(self) -> str:
        return f"Delivery from {self.business_city} ({self.business_pincode})"
