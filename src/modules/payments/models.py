"""Captured payments that never became an order.

A payment whose signature verified but whose order could not be placed
(coupon expired, amount mismatch, ...) is recorded here and refunded in
full by ``refund_rejected_payment``.  ``payment_id`` is unique, so the
same payment is rejected and refunded at most once.
"""

from django.db import models

from modules.core.models import BaseModel
from modules.payments.constants import RefundStatus


class RejectedPayment(BaseModel):
    payment_id = models.CharField(max_length=100, unique=True)
    gateway_order_id = models.CharField(max_length=100)
    customer = models.ForeignKey(
        "accounts.Profile",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="rejected_payments",
    )
    reason = models.TextField()
    amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    refund_status = models.CharField(
        max_length=10,
        choices=RefundStatus.choices,
        default=RefundStatus.PENDING,
    )
    refund_id = models.CharField(max_length=100, null=True, blank=True)  # noqa: DJ01
    error_message = models.TextField(null=True, blank=True)  # noqa: DJ01

    class Meta:
        db_table = "rejected_payments"
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.payment_id} ({self.refund_status})"
