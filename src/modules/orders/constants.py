"""Order domain constants.

Status choices and the valid transitions of the order state machine.
Skip-ahead transitions (e.g. ``pending -> shipped``) are not listed and
are therefore rejected.
"""

from decimal import Decimal

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    CONFIRMED = "confirmed", "Confirmed"
    PROCESSING = "processing", "Processing"
    SHIPPED = "shipped", "Shipped"
    DELIVERED = "delivered", "Delivered"
    CANCELLED = "cancelled", "Cancelled"


class PaymentMethod(models.TextChoices):
    RAZORPAY = "razorpay", "Razorpay"
    COD = "cod", "Cash on Delivery"


class PaymentStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"


VALID_TRANSITIONS: dict[str, set[str]] = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

TERMINAL_STATES: set[str] = {OrderStatus.DELIVERED, OrderStatus.CANCELLED}

CANCELLABLE_STATES: set[str] = {OrderStatus.PENDING, OrderStatus.CONFIRMED}

ORDER_NUMBER_MAX_RETRIES = 5

MONEY_TOLERANCE = Decimal("0.01")

DEFAULT_CANCELLATION_NOTE = "Order cancelled by customer"
ADMIN_CANCELLATION_NOTE = "Order cancelled by the store"

IDEMPOTENCY_KEY_MAX_LENGTH = 255
