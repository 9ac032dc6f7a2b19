"""Order service layer (Use Cases).

Orchestrates order creation, status management, tracking updates and
cancellation.  All write operations are atomic: the service defines the
unit-of-work boundary.

Rules enforced:
- Money reconciles before anything is written.
- Status transitions follow ``VALID_TRANSITIONS``.
- Every transition appends exactly one history row.
- Concurrent writers are detected through ``version`` and surfaced as
  ``OrderConflict``; nothing is resolved by last-write-wins.

The service never sends notifications.  Callers publish order events
after the mutation commits.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, TypeVar
from uuid import UUID

import structlog
from django.db import transaction
from django.utils import timezone

from modules.orders.constants import (
    ADMIN_CANCELLATION_NOTE,
    DEFAULT_CANCELLATION_NOTE,
    MONEY_TOLERANCE,
    OrderStatus,
    PaymentStatus,
)
from modules.orders.exceptions import (
    InvalidTransition,
    MoneyInvariantViolation,
    OrderConflict,
    OrderNotCancellable,
    OrderNotFound,
)

if TYPE_CHECKING:
    from modules.core.pagination import Page
    from modules.orders.dtos import (
        CancelOrderDTO,
        CreateOrderDTO,
        OrderFiltersDTO,
        UpdateOrderStatusDTO,
        UpdateTrackingDTO,
    )
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)

T = TypeVar("T")

CENTS = Decimal("0.01")
MAX_CONFLICT_RETRIES = 3


def to_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def verify_order_amounts(dto: CreateOrderDTO) -> None:
    """Raise ``MoneyInvariantViolation`` unless every amount reconciles.

    - every amount is non-negative
    - each item subtotal equals ``price * quantity``
    - item subtotals add up to ``subtotal``
    - ``0 <= discount <= subtotal``
    - ``total == subtotal - discount + delivery_charge + tax``
    """
    amounts = {
        "subtotal": dto.subtotal,
        "discount": dto.discount,
        "delivery_charge": dto.delivery_charge,
        "tax": dto.tax,
        "total": dto.total,
    }
    for name, amount in amounts.items():
        if amount < 0:
            raise MoneyInvariantViolation(f"{name} cannot be negative.", field=name)

    items_total = Decimal("0")
    for item in dto.items:
        expected = item.price * item.quantity
        if abs(item.subtotal - expected) > MONEY_TOLERANCE:
            raise MoneyInvariantViolation(
                f"Item subtotal mismatch for {item.product_name}.",
                product_id=str(item.product_id),
            )
        items_total += item.subtotal

    if abs(items_total - dto.subtotal) > MONEY_TOLERANCE:
        raise MoneyInvariantViolation("Order subtotal does not match its items.")
    if dto.discount > dto.subtotal:
        raise MoneyInvariantViolation("Discount cannot exceed the order subtotal.")

    expected_total = dto.subtotal - dto.discount + dto.delivery_charge + dto.tax
    if abs(dto.total - expected_total) > MONEY_TOLERANCE:
        raise MoneyInvariantViolation(
            "Order total does not reconcile.",
            expected=str(expected_total),
            received=str(dto.total),
        )


def retry_on_conflict(
    operation: Callable[[], T], attempts: int = MAX_CONFLICT_RETRIES
) -> T:
    """Re-run *operation* on ``OrderConflict`` up to *attempts* times.

    Only safe for operations that re-read the order on every call (i.e.
    no caller-supplied ``expected_version``).
    """
    for attempt in range(1, attempts):
        try:
            return operation()
        except OrderConflict:
            logger.info("order.conflict_retry", attempt=attempt)
    return operation()


class OrderService:
    """Application service for Order use-cases.

    Receives its repository via constructor injection (DIP).
    """

    def __init__(self, order_repository: IOrderRepository) -> None:
        self._order_repo = order_repository

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def create_order(self, dto: CreateOrderDTO) -> Order:
        """Persist a verified checkout as a ``pending`` order.

        Header, items and the initial history row are written in one
        transaction; a failure in any of them leaves nothing behind.

        Raises:
            MoneyInvariantViolation: amounts do not reconcile.
        """
        log = logger.bind(customer_id=str(dto.customer_id), total=str(dto.total))
        log.info("order.creation_started")

        try:
            verify_order_amounts(dto)
        except MoneyInvariantViolation as exc:
            log.warning("order.money_mismatch", error=exc.message, **exc.context)
            raise

        payment_status = (
            PaymentStatus.COMPLETED if dto.payment_id else PaymentStatus.PENDING
        )
        order = self._order_repo.create(
            {
                "customer_id": dto.customer_id,
                "created_by": dto.customer_id,
                "status": OrderStatus.PENDING,
                "subtotal": to_money(dto.subtotal),
                "discount": to_money(dto.discount),
                "coupon_code": dto.coupon_code,
                "delivery_charge": to_money(dto.delivery_charge),
                "tax": to_money(dto.tax),
                "total": to_money(dto.total),
                "shipping_address": dto.shipping_address.model_dump(exclude_none=True),
                "delivery_pincode": dto.shipping_address.pincode,
                "estimated_delivery_date": dto.estimated_delivery_date,
                "payment_method": dto.payment_method,
                "payment_status": payment_status,
                "payment_id": dto.payment_id,
                "gateway_order_id": dto.gateway_order_id,
                "idempotency_key": dto.idempotency_key,
                "notes": dto.notes,
                "items": [
                    {
                        "product_id": item.product_id,
                        "product_name": item.product_name,
                        "product_image": item.product_image,
                        "variant_id": item.variant_id,
                        "variant_name": item.variant_name,
                        "quantity": item.quantity,
                        "price": to_money(item.price),
                    }
                    for item in dto.items
                ],
            }
        )

        log.info("order.created", order_id=str(order.id), order_number=order.order_number)
        return self._order_repo.get_by_id(str(order.id)) or order

    @transaction.atomic
    def update_order_status(self, dto: UpdateOrderStatusDTO) -> Order:
        """Move an order along the state machine under optimistic locking.

        A ``cancelled`` target records the same cancellation fields as
        ``cancel_order``, including ``refund_required`` for a captured
        payment.

        Raises:
            OrderNotFound: order does not exist.
            OrderConflict: ``expected_version`` is stale, or another writer
                committed between the read and the conditional update.
            InvalidTransition: the transition is not in the state machine.
        """
        order = self._load(dto.order_id)
        log = logger.bind(
            order_id=str(order.id),
            current_status=order.status,
            new_status=dto.new_status,
            version=order.version,
        )
        self._check_expected_version(order, dto.expected_version, log)

        if not order.can_transition_to(dto.new_status):
            log.warning("order.invalid_transition")
            raise InvalidTransition(
                f"Cannot transition order from {order.status} to {dto.new_status}.",
                current_status=order.status,
            )

        changes: Dict[str, Any] = {"status": dto.new_status}
        for field in ("tracking_number", "tracking_url", "courier_name"):
            value = getattr(dto, field)
            if value:
                changes[field] = value
        notes = dto.notes or ""
        if dto.new_status == OrderStatus.CANCELLED:
            notes = notes or ADMIN_CANCELLATION_NOTE
            changes.update(self._cancellation_changes(order, notes))

        if not self._order_repo.update_if_version(order.id, order.version, changes):
            log.warning("order.concurrent_update")
            raise OrderConflict(
                "Order was modified by another user. Please refresh and try again."
            )
        self._order_repo.add_history(
            order_id=order.id,
            status=dto.new_status,
            old_status=order.status,
            updated_by=dto.updated_by,
            notes=notes,
        )

        log.info("order.status_updated", refund_required=changes.get("refund_required", False))
        return self._load(order.id)

    @transaction.atomic
    def update_tracking(self, dto: UpdateTrackingDTO) -> Order:
        """Attach tracking details without changing status.

        Raises:
            OrderNotFound, OrderConflict, InvalidTransition (cancelled order).
        """
        order = self._load(dto.order_id)
        log = logger.bind(order_id=str(order.id), version=order.version)
        self._check_expected_version(order, dto.expected_version, log)

        if order.status == OrderStatus.CANCELLED:
            raise InvalidTransition("Cannot add tracking to a cancelled order.")

        changes: Dict[str, Any] = {"tracking_number": dto.tracking_number}
        if dto.tracking_url is not None:
            changes["tracking_url"] = dto.tracking_url
        if dto.courier_name is not None:
            changes["courier_name"] = dto.courier_name

        if not self._order_repo.update_if_version(order.id, order.version, changes):
            log.warning("order.concurrent_update")
            raise OrderConflict(
                "Order was modified by another user. Please refresh and try again."
            )

        log.info("order.tracking_updated", tracking_number=dto.tracking_number)
        return self._load(order.id)

    @transaction.atomic
    def cancel_order(self, dto: CancelOrderDTO) -> Order:
        """Cancel a customer's own order before fulfilment starts.

        When the payment had been captured the order is flagged with
        ``refund_required``; the refund itself runs as a follow-up task.

        Raises:
            OrderNotFound: no such order for this customer.
            OrderNotCancellable: status is past ``confirmed``.
            OrderConflict: the order changed concurrently.
        """
        order = self._order_repo.get_by_id(str(dto.order_id), customer_id=dto.customer_id)
        if not order:
            raise OrderNotFound(f"Order {dto.order_id} not found.")

        log = logger.bind(order_id=str(order.id), current_status=order.status)

        if not order.is_cancellable:
            log.info("order.cancel_not_allowed")
            raise OrderNotCancellable(
                f'Orders with status "{order.status}" cannot be cancelled. '
                "Please contact support for assistance.",
                current_status=order.status,
            )

        reason = dto.reason or DEFAULT_CANCELLATION_NOTE
        changes: Dict[str, Any] = {"status": OrderStatus.CANCELLED}
        changes.update(self._cancellation_changes(order, reason))
        refund_required = changes["refund_required"]
        if not self._order_repo.update_if_version(order.id, order.version, changes):
            log.warning("order.concurrent_update")
            raise OrderConflict(
                "Order was modified while cancelling. Please refresh and try again."
            )
        self._order_repo.add_history(
            order_id=order.id,
            status=OrderStatus.CANCELLED,
            old_status=order.status,
            updated_by=dto.customer_id,
            notes=reason,
        )

        log.info("order.cancelled", refund_required=refund_required)
        return self._load(order.id)

    def record_refund(self, order_id: UUID) -> Order:
        """Mark a flagged order's payment as refunded."""

        @transaction.atomic
        def _apply() -> Order:
            order = self._load(order_id)
            changes = {
                "payment_status": PaymentStatus.REFUNDED,
                "refund_required": False,
            }
            if not self._order_repo.update_if_version(order.id, order.version, changes):
                raise OrderConflict("Order changed while recording refund.")
            return self._load(order.id)

        order = retry_on_conflict(_apply)
        logger.info("order.refund_recorded", order_id=str(order_id))
        return order

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: str, customer_id: Optional[UUID] = None) -> Order:
        """Retrieve a single order, optionally scoped to its customer.

        Raises:
            OrderNotFound: if the order does not exist.
        """
        order = self._order_repo.get_by_id(str(order_id), customer_id=customer_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def get_order_by_number(self, order_number: str) -> Order:
        order = self._order_repo.get_by_number(order_number)
        if not order:
            raise OrderNotFound(f"Order {order_number} not found.")
        return order

    def list_orders(self, filters: OrderFiltersDTO, page: int = 1, limit: int = 20) -> Page[Order]:
        """Newest-first page of orders matching *filters*."""
        return self._order_repo.search(filters, page, limit)

    def find_by_payment_id(self, payment_id: str) -> Optional[Order]:
        return self._order_repo.get_by_payment_id(payment_id)

    def find_by_idempotency_key(self, key: str, customer_id: UUID) -> Optional[Order]:
        return self._order_repo.get_by_idempotency_key(key, customer_id=customer_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _cancellation_changes(order: Order, reason: str) -> Dict[str, Any]:
        """Fields every cancellation sets; a captured payment needs a refund."""
        return {
            "cancelled_at": timezone.now(),
            "cancellation_reason": reason,
            "refund_required": order.payment_status == PaymentStatus.COMPLETED,
        }

    def _load(self, order_id: UUID) -> Order:
        order = self._order_repo.get_by_id(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    @staticmethod
    def _check_expected_version(
        order: Order, expected_version: Optional[int], log: Any
    ) -> None:
        if expected_version is not None and expected_version != order.version:
            log.info("order.stale_version", expected_version=expected_version)
            raise OrderConflict(
                "Order was modified by another user. Please refresh and try again.",
                current_version=order.version,
            )
