"""Coupon and CouponUsage models.

``usage_count`` is only ever incremented with an ``F()`` expression
after an order has been placed.  ``CouponUsage`` rows back the
per-customer limit.
"""

from __future__ import annotations

from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from modules.core.models import BaseModel
from modules.coupons.constants import DiscountType


class Coupon(BaseModel):
    code = models.CharField(max_length=20, unique=True)
    description = models.CharField(max_length=255, blank=True, default="")
    discount_type = models.CharField(max_length=20, choices=DiscountType.choices)
    discount_value = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    min_order_value = models.DecimalField(
        max_digits=12, decimal_places=2, null=True, blank=True
    )
    max_discount = models.DecimalField(
        max_digits=12, decimal_places=2, null=True, blank=True
    )
    usage_limit = models.PositiveIntegerField(null=True, blank=True)
    per_user_limit = models.PositiveIntegerField(null=True, blank=True)
    usage_count = models.PositiveIntegerField(default=0)
    valid_from = models.DateTimeField(default=timezone.now)
    valid_until = models.DateTimeField()
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "coupons"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["is_active", "valid_until"], name="coupons_active_idx"),
        ]

    def save(self, *args, **kwargs) -> None:
        self.code = (self.code or "").strip().upper()
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.code} ({self.discount_type} {self.discount_value})"


class CouponUsage(BaseModel):
    coupon = models.ForeignKey(
        "coupons.Coupon",
        on_delete=models.CASCADE,
        related_name="usages",
    )
    customer = models.ForeignKey(
        "accounts.Profile",
        on_delete=models.CASCADE,
        related_name="coupon_usages",
    )
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        db_table = "coupon_usages"
        constraints = [
            models.UniqueConstraint(
                fields=["coupon", "order"], name="coupon_usage_once_per_order"
            ),
        ]
