"""Order API views.

Exposes ``OrderService`` via HTTP using DRF ViewSets.

- ``OrderViewSet``: the customer's own orders (list, retrieve, cancel).
- ``AdminOrderViewSet``: every order (filtered list, retrieve, status
  and tracking updates) for profiles with the ``admin`` role.

Domain errors are translated by ``error_response`` from their
``ErrorKind``; the view never swallows generic exceptions.  Lifecycle
events are published only after the service call has committed.
"""

from __future__ import annotations

from typing import Any, List, Optional

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from modules.core.exceptions import error_response, validation_error_response
from modules.core.pagination import StandardResultsSetPagination
from modules.core.permissions import HasProfile, IsAdminRole
from modules.core.validation import (
    as_aware_datetime,
    sanitize_text,
    validate_date_range,
    validate_order_status,
    validate_pagination,
    validate_payment_status,
    validate_uuid,
)
from modules.orders.constants import OrderStatus
from modules.orders.dtos import (
    CancelOrderDTO,
    OrderFiltersDTO,
    UpdateOrderStatusDTO,
    UpdateTrackingDTO,
)
from modules.orders.events import OrderCancelled, OrderStatusChanged, OrderTrackingUpdated
from modules.orders.filters import OrderFilter
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.serializers import (
    CancelOrderSerializer,
    OrderListSerializer,
    OrderSerializer,
    UpdateOrderStatusSerializer,
    UpdateTrackingSerializer,
)
from modules.orders.services import OrderService
from shared.domain.errors import DomainError
from shared.infrastructure.bus import event_bus

NOTES_MAX_LENGTH = 500
TRACKING_NUMBER_MAX_LENGTH = 50
TRACKING_URL_MAX_LENGTH = 500
COURIER_NAME_MAX_LENGTH = 100
SEARCH_MAX_LENGTH = 100


def _optional_text(value: Any, max_length: int, label: str) -> tuple[Optional[str], Optional[str]]:
    """Sanitise an optional free-text field: ``(value, error)``."""
    if value in (None, ""):
        return None, None
    result = sanitize_text(value, max_length=max_length)
    if not result.is_valid:
        return None, f"{label}: {result.error}"
    return result.sanitized, None


def _multi_value(request: Request, name: str) -> List[str]:
    values: List[str] = []
    for raw in request.query_params.getlist(name):
        values.extend(part for part in raw.split(",") if part.strip())
    return values


class OrderViewSet(GenericViewSet):
    """The authenticated customer's own orders."""

    permission_classes = [HasProfile]
    filterset_class = OrderFilter
    ordering_fields = ["created_at", "total", "status"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    pagination_class = StandardResultsSetPagination

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._repository = OrderDjangoRepository()
        self._service = OrderService(order_repository=self._repository)

    def get_queryset(self):
        if getattr(self, "swagger_fake_view", False):
            return self._repository.list().none()
        return self._repository.list({"customer_id": self.request.user.profile.id})

    def list(self, request: Request) -> Response:
        """GET /api/orders/"""
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        serializer = OrderListSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/orders/{pk}/"""
        try:
            order = self._service.get_order(pk, customer_id=request.user.profile.id)
        except DomainError as exc:
            return error_response(exc)
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/orders/{pk}/cancel/"""
        order_id = validate_uuid(pk, "Order ID")
        if not order_id.is_valid:
            return validation_error_response(order_id.error)

        serializer = CancelOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        reason, error = _optional_text(
            serializer.validated_data["reason"], NOTES_MAX_LENGTH, "Reason"
        )
        if error:
            return validation_error_response(error)

        dto = CancelOrderDTO(
            order_id=order_id.sanitized,
            customer_id=request.user.profile.id,
            reason=reason,
        )
        try:
            order = self._service.cancel_order(dto)
        except DomainError as exc:
            return error_response(exc)

        event_bus.publish(
            OrderCancelled(
                aggregate_id=order.id,
                reason=order.cancellation_reason,
                refund_required=order.refund_required,
            )
        )
        return Response(OrderSerializer(order).data)


class AdminOrderViewSet(GenericViewSet):
    """Back-office order management."""

    permission_classes = [IsAdminRole]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = OrderService(order_repository=OrderDjangoRepository())

    def get_throttles(self):
        self.throttle_scope = (
            "status_update" if self.action in {"update_status", "update_tracking"} else None
        )
        return super().get_throttles()

    def list(self, request: Request) -> Response:
        """GET /api/admin/orders/

        Query: ``status`` and ``payment_status`` (repeatable or
        comma-separated), ``date_from``, ``date_to``, ``search``,
        ``page``, ``limit``.
        """
        statuses = []
        for raw in _multi_value(request, "status"):
            result = validate_order_status(raw)
            if not result.is_valid:
                return validation_error_response(result.error)
            statuses.append(result.sanitized)

        payment_statuses = []
        for raw in _multi_value(request, "payment_status"):
            result = validate_payment_status(raw)
            if not result.is_valid:
                return validation_error_response(result.error)
            payment_statuses.append(result.sanitized)

        date_range = validate_date_range(
            request.query_params.get("date_from"), request.query_params.get("date_to")
        )
        if not date_range.is_valid:
            return validation_error_response(date_range.error)

        search, error = _optional_text(
            request.query_params.get("search"), SEARCH_MAX_LENGTH, "Search"
        )
        if error:
            return validation_error_response(error)

        pagination = validate_pagination(
            request.query_params.get("page"), request.query_params.get("limit")
        )
        if not pagination.is_valid:
            return validation_error_response(pagination.error)
        page_number, limit = pagination.sanitized

        date_from, date_to = date_range.sanitized
        filters = OrderFiltersDTO(
            statuses=statuses,
            payment_statuses=payment_statuses,
            date_from=as_aware_datetime(date_from),
            date_to=as_aware_datetime(date_to, end_of_day=True),
            search=search,
        )
        page = self._service.list_orders(filters, page=page_number, limit=limit)
        return page.to_response("orders", OrderListSerializer(page.items, many=True).data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/admin/orders/{pk}/"""
        order_id = validate_uuid(pk, "Order ID")
        if not order_id.is_valid:
            return validation_error_response(order_id.error)
        try:
            order = self._service.get_order(order_id.sanitized)
        except DomainError as exc:
            return error_response(exc)
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["put"], url_path="status")
    def update_status(self, request: Request, pk: str | None = None) -> Response:
        """PUT /api/admin/orders/{pk}/status/

        Body: ``new_status``, ``notes?``, ``tracking_number?``,
        ``tracking_url?``, ``courier_name?``, ``expected_version?``.
        Returns 409 with ``conflict: true`` on a version mismatch.  A
        cancellation publishes ``OrderCancelled`` so a captured payment is
        refunded.
        """
        order_id = validate_uuid(pk, "Order ID")
        if not order_id.is_valid:
            return validation_error_response(order_id.error)

        serializer = UpdateOrderStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        new_status = validate_order_status(data["new_status"])
        if not new_status.is_valid:
            return validation_error_response(new_status.error)

        fields = {}
        for key, limit, label in (
            ("notes", NOTES_MAX_LENGTH, "Notes"),
            ("tracking_number", TRACKING_NUMBER_MAX_LENGTH, "Tracking number"),
            ("tracking_url", TRACKING_URL_MAX_LENGTH, "Tracking URL"),
            ("courier_name", COURIER_NAME_MAX_LENGTH, "Courier name"),
        ):
            fields[key], error = _optional_text(data.get(key), limit, label)
            if error:
                return validation_error_response(error)

        dto = UpdateOrderStatusDTO(
            order_id=order_id.sanitized,
            new_status=new_status.sanitized,
            updated_by=request.user.profile.id,
            expected_version=data.get("expected_version"),
            **fields,
        )
        try:
            order = self._service.update_order_status(dto)
        except DomainError as exc:
            return error_response(exc)

        if order.status == OrderStatus.CANCELLED:
            event = OrderCancelled(
                aggregate_id=order.id,
                reason=order.cancellation_reason,
                refund_required=order.refund_required,
            )
        else:
            latest = list(order.status_history.all())[-1]
            event = OrderStatusChanged(
                aggregate_id=order.id,
                old_status=latest.old_status,
                new_status=order.status,
                notes=fields["notes"],
            )
        event_bus.publish(event)
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["put"], url_path="tracking")
    def update_tracking(self, request: Request, pk: str | None = None) -> Response:
        """PUT /api/admin/orders/{pk}/tracking/ (sends the shipping notification)."""
        order_id = validate_uuid(pk, "Order ID")
        if not order_id.is_valid:
            return validation_error_response(order_id.error)

        serializer = UpdateTrackingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        tracking_number, error = _optional_text(
            data.get("tracking_number"), TRACKING_NUMBER_MAX_LENGTH, "Tracking number"
        )
        if error:
            return validation_error_response(error)
        if not tracking_number:
            return validation_error_response("Tracking number is required")
        tracking_url, error = _optional_text(
            data.get("tracking_url"), TRACKING_URL_MAX_LENGTH, "Tracking URL"
        )
        if error:
            return validation_error_response(error)
        courier_name, error = _optional_text(
            data.get("courier_name"), COURIER_NAME_MAX_LENGTH, "Courier name"
        )
        if error:
            return validation_error_response(error)

        dto = UpdateTrackingDTO(
            order_id=order_id.sanitized,
            tracking_number=tracking_number,
            tracking_url=tracking_url,
            courier_name=courier_name,
            updated_by=request.user.profile.id,
            expected_version=data.get("expected_version"),
        )
        try:
            order = self._service.update_tracking(dto)
        except DomainError as exc:
            return error_response(exc)

        event_bus.publish(
            OrderTrackingUpdated(aggregate_id=order.id, tracking_number=tracking_number)
        )
        return Response(OrderSerializer(order).data)
