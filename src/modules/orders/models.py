"""Order, OrderItem, and OrderStatusHistory models.

- Financial fields reconcile: ``total == subtotal - discount +
  delivery_charge + tax`` (checked by the service before persisting).
- ``version`` backs optimistic concurrency: every status or tracking
  update is a conditional ``UPDATE ... WHERE version = <read version>``.
- ``shipping_address`` is a JSON snapshot copied at creation.
- OrderItem snapshots product name and unit ``price``; ``subtotal`` is
  always ``quantity * price``.
- OrderStatusHistory is append-only.
- Orders are never deleted; cancellation is a status.
- A captured ``payment_id`` places at most one order, and so does a
  customer's ``idempotency_key`` (partial unique constraints).
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import structlog
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import IntegrityError, models, transaction
from django.utils import timezone

from modules.core.models import BaseModel
from modules.orders.constants import (
    CANCELLABLE_STATES,
    IDEMPOTENCY_KEY_MAX_LENGTH,
    ORDER_NUMBER_MAX_RETRIES,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)

logger = structlog.get_logger(__name__)


def _money_field(**kwargs: Any) -> models.DecimalField:
    return models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
        **kwargs,
    )


class Order(BaseModel):
    """Order aggregate root.

    ``order_number`` is generated on first save as ``ORD-YYYY-NNNNNN``,
    sequential within the calendar year.  Two checkouts that read the same
    last number race on the unique index; the loser retries with the next
    one inside a savepoint.  The UUID ``id`` is used for all
    internal references and API lookups.
    """

    order_number: models.CharField = models.CharField(
        max_length=20, unique=True, editable=False
    )
    customer: models.ForeignKey = models.ForeignKey(
        "accounts.Profile",
        on_delete=models.PROTECT,
        related_name="orders",
    )
    status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
    )
    version: models.PositiveIntegerField = models.PositiveIntegerField(default=1)

    subtotal = _money_field()
    discount = _money_field()
    coupon_code: models.CharField = models.CharField(  # noqa: DJ01
        max_length=20, null=True, blank=True
    )
    delivery_charge = _money_field()
    tax = _money_field()
    total = _money_field()

    shipping_address: models.JSONField = models.JSONField()
    delivery_pincode: models.CharField = models.CharField(max_length=6)
    estimated_delivery_date = models.DateField(null=True, blank=True)

    payment_method: models.CharField = models.CharField(
        max_length=20, choices=PaymentMethod.choices
    )
    payment_status: models.CharField = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    payment_id: models.CharField = models.CharField(  # noqa: DJ01
        max_length=100, null=True, blank=True
    )
    gateway_order_id: models.CharField = models.CharField(  # noqa: DJ01
        max_length=100, null=True, blank=True
    )
    refund_required: models.BooleanField = models.BooleanField(default=False)
    idempotency_key: models.CharField = models.CharField(  # noqa: DJ01
        max_length=IDEMPOTENCY_KEY_MAX_LENGTH, null=True, blank=True
    )

    tracking_number: models.CharField = models.CharField(  # noqa: DJ01
        max_length=50, null=True, blank=True
    )
    tracking_url: models.URLField = models.URLField(  # noqa: DJ01
        max_length=500, null=True, blank=True
    )
    courier_name: models.CharField = models.CharField(  # noqa: DJ01
        max_length=100, null=True, blank=True
    )

    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason: models.TextField = models.TextField(blank=True, default="")
    notes: models.TextField = models.TextField(blank=True, default="")

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="orders_status_idx"),
            models.Index(fields=["payment_status"], name="orders_payment_status_idx"),
            models.Index(fields=["-created_at"], name="orders_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(discount__lte=models.F("subtotal")),
                name="orders_discount_within_subtotal",
            ),
            models.UniqueConstraint(
                fields=["payment_id"],
                condition=models.Q(payment_id__isnull=False),
                name="orders_payment_id_unique",
            ),
            models.UniqueConstraint(
                fields=["customer", "idempotency_key"],
                condition=models.Q(idempotency_key__isnull=False),
                name="orders_idempotency_key_unique",
            ),
        ]

    # ------------------------------------------------------------------
    # State Machine helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        """Return ``True`` if the order is in a terminal state."""
        return self.status in TERMINAL_STATES

    @property
    def is_cancellable(self) -> bool:
        return self.status in CANCELLABLE_STATES

    def can_transition_to(self, new_status: str) -> bool:
        """Check whether transitioning to *new_status* is valid."""
        allowed = VALID_TRANSITIONS.get(self.status, set())
        return new_status in allowed

    # ------------------------------------------------------------------
    # Order number generation
    # ------------------------------------------------------------------

    @staticmethod
    def generate_order_number(offset: int = 0) -> str:
        """Next number in the current year's sequence: ``ORD-YYYY-NNNNNN``."""
        prefix = f"ORD-{timezone.now():%Y}-"
        last = (
            Order.objects.filter(order_number__startswith=prefix)
            .order_by("-order_number")
            .values_list("order_number", flat=True)
            .first()
        )
        sequence = int(last[len(prefix):]) if last else 0
        return f"{prefix}{sequence + 1 + offset:06d}"

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, *args: Any, **kwargs: Any) -> None:
        if self.order_number:
            super().save(*args, **kwargs)
            return

        for attempt in range(ORDER_NUMBER_MAX_RETRIES):
            candidate = self.generate_order_number(offset=attempt)
            self.order_number = candidate
            try:
                with transaction.atomic():
                    super().save(*args, **kwargs)
                return
            except IntegrityError:
                self.order_number = ""
                # Only a lost race for the number is retried.
                if not Order.objects.filter(order_number=candidate).exists():
                    raise
                logger.info("order.number_collision", order_number=candidate, attempt=attempt + 1)

        raise RuntimeError(
            f"Failed to generate unique order_number after "
            f"{ORDER_NUMBER_MAX_RETRIES} attempts"
        )

    def __str__(self) -> str:
        return f"{self.order_number} ({self.status})"


class OrderItem(BaseModel):
    """Immutable line-item snapshot.

    ``price`` and ``product_name`` are copied from the catalog when the
    order is placed; later catalog edits never touch placed orders.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="items",
    )
    product_id = models.UUIDField()
    product_name: models.CharField = models.CharField(max_length=200)
    product_image: models.URLField = models.URLField(  # noqa: DJ01
        max_length=500, null=True, blank=True
    )
    variant_id = models.UUIDField(null=True, blank=True)
    variant_name: models.CharField = models.CharField(  # noqa: DJ01
        max_length=100, null=True, blank=True
    )
    quantity: models.PositiveIntegerField = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
    )
    price: models.DecimalField = models.DecimalField(max_digits=12, decimal_places=2)
    subtotal: models.DecimalField = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        editable=False,
    )

    class Meta:
        db_table = "order_items"
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="order_items_quantity_positive",
            ),
        ]

    def clean(self) -> None:
        super().clean()
        if self.quantity is not None and self.quantity < 1:
            raise ValidationError({"quantity": "Quantity must be at least 1."})

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self._state.adding:
            raise ValidationError("Order items are immutable once placed.")
        self.subtotal = self.quantity * self.price
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.product_name} x{self.quantity} ({self.subtotal})"


class OrderStatusHistory(BaseModel):
    """Append-only audit trail for order status transitions.

    One row per transition, including the initial ``pending`` row written
    with the order.  ``updated_by`` is ``None`` for system changes.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="status_history",
    )
    old_status: models.CharField = models.CharField(  # noqa: DJ01
        max_length=20,
        choices=OrderStatus.choices,
        null=True,
        blank=True,
    )
    status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
    )
    updated_by: models.ForeignKey = models.ForeignKey(
        "accounts.Profile",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    notes: models.TextField = models.TextField(blank=True, default="")

    class Meta:
        db_table = "order_status_history"
        ordering = ["created_at"]
        indexes = [
            models.Index(
                fields=["order", "created_at"],
                name="osh_order_created_idx",
            ),
        ]

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self._state.adding:
            raise ValidationError("Status history entries cannot be rewritten.")
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.order} : {self.old_status} -> {self.status}"
