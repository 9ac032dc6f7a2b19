"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.  Creation
writes the header, items and initial history inside one
``transaction.atomic()`` block, so an order can never exist without its
items.

Optimistic concurrency is a single conditional UPDATE
(``filter(id=..., version=expected).update(...)``): the check and the
write are one statement, so there is no read-then-write window.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F, Q, QuerySet
from django.utils import timezone

from modules.core.pagination import Page
from modules.orders.constants import OrderStatus
from modules.orders.dtos import OrderFiltersDTO
from modules.orders.models import Order, OrderItem, OrderStatusHistory
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    def _base_queryset(self) -> QuerySet:
        return Order.objects.select_related("customer").prefetch_related(
            "items", "status_history"
        )

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Order:
        payload = dict(data)
        items: List[Dict[str, Any]] = payload.pop("items", [])
        created_by = payload.pop("created_by", None)

        order = Order(**payload)
        order.save()

        for item_data in items:
            OrderItem(order=order, **item_data).save()

        self.add_history(
            order_id=order.id,
            status=OrderStatus.PENDING,
            updated_by=created_by,
            notes="Order placed",
        )

        logger.info(
            "order.persisted",
            order_id=str(order.id),
            order_number=order.order_number,
            item_count=len(items),
        )
        return order

    # ------------------------------------------------------------------
    # Conditional update
    # ------------------------------------------------------------------

    def update_if_version(
        self, order_id: UUID, expected_version: int, changes: Dict[str, Any]
    ) -> bool:
        updated = Order.objects.filter(id=order_id, version=expected_version).update(
            **changes,
            version=F("version") + 1,
            updated_at=timezone.now(),
        )
        if not updated:
            logger.info(
                "order.version_mismatch",
                order_id=str(order_id),
                expected_version=expected_version,
            )
        return bool(updated)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: str, customer_id: Optional[UUID] = None) -> Optional[Order]:
        """Retrieve an order with eager-loaded relations.

        Returns ``None`` for non-existent or malformed IDs, and for
        orders that belong to someone other than *customer_id*.
        """
        try:
            queryset = self._base_queryset().filter(id=id)
            if customer_id is not None:
                queryset = queryset.filter(customer_id=customer_id)
            return queryset.first()
        except (ValueError, ValidationError):
            return None

    def get_by_number(self, order_number: str) -> Optional[Order]:
        return self._base_queryset().filter(order_number=order_number).first()

    def get_by_payment_id(self, payment_id: str) -> Optional[Order]:
        return self._base_queryset().filter(payment_id=payment_id).first()

    def get_by_idempotency_key(
        self, key: str, customer_id: Optional[UUID] = None
    ) -> Optional[Order]:
        """Retrieve an order by its idempotency key."""
        queryset = self._base_queryset().filter(idempotency_key=key)
        if customer_id is not None:
            queryset = queryset.filter(customer_id=customer_id)
        return queryset.first()

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        queryset = self._base_queryset()
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def search(self, filters: OrderFiltersDTO, page: int, limit: int) -> Page[Order]:
        queryset = Order.objects.select_related("customer")
        if filters.customer_id:
            queryset = queryset.filter(customer_id=filters.customer_id)
        if filters.statuses:
            queryset = queryset.filter(status__in=filters.statuses)
        if filters.payment_statuses:
            queryset = queryset.filter(payment_status__in=filters.payment_statuses)
        if filters.date_from:
            queryset = queryset.filter(created_at__gte=filters.date_from)
        if filters.date_to:
            queryset = queryset.filter(created_at__lte=filters.date_to)
        if filters.search:
            term = filters.search.strip()
            queryset = queryset.filter(
                Q(order_number__icontains=term)
                | Q(shipping_address__name__icontains=term)
                | Q(shipping_address__phone__icontains=term)
            )

        total = queryset.count()
        offset = (page - 1) * limit
        items = list(queryset.order_by("-created_at", "-id")[offset : offset + limit])
        return Page(items=items, total=total, page=page, limit=limit)

    # ------------------------------------------------------------------
    # Save (IRepository contract)
    # ------------------------------------------------------------------

    def save(self, entity: Order) -> Order:
        """Persist non-versioned fields (notes, payment bookkeeping)."""
        entity.save()
        logger.info("order.saved", order_id=str(entity.id))
        return entity

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def add_history(
        self,
        order_id: UUID,
        status: str,
        old_status: Optional[str] = None,
        updated_by: Optional[UUID] = None,
        notes: str = "",
    ) -> OrderStatusHistory:
        history = OrderStatusHistory(
            order_id=order_id,
            old_status=old_status,
            status=status,
            updated_by_id=updated_by,
            notes=notes or "",
        )
        history.save()

        logger.info(
            "order.history_added",
            order_id=str(order_id),
            old_status=old_status,
            new_status=status,
        )
        return history
