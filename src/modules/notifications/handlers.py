"""Route order lifecycle events to customer and admin notifications."""

from __future__ import annotations

import structlog

from modules.notifications.services import get_notification_service
from modules.orders.constants import OrderStatus
from modules.orders.events import (
    OrderCancelled,
    OrderPlaced,
    OrderStatusChanged,
    OrderTrackingUpdated,
)
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


def _load_order(order_id) -> Order | None:
    order = OrderDjangoRepository().get_by_id(str(order_id))
    if order is None:
        logger.warning("notification.order_missing", order_id=str(order_id))
    return order


class OrderPlacedHandler(IEventHandler[OrderPlaced]):
    def handle(self, event: OrderPlaced) -> None:
        order = _load_order(event.aggregate_id)
        if order is None:
            return
        service = get_notification_service()
        service.send_order_confirmation(order)
        service.send_admin_new_order_alert(order)


class OrderStatusChangedHandler(IEventHandler[OrderStatusChanged]):
    def handle(self, event: OrderStatusChanged) -> None:
        order = _load_order(event.aggregate_id)
        if order is None:
            return
        service = get_notification_service()
        if event.new_status == OrderStatus.SHIPPED:
            service.send_shipping_notification(order)
        elif event.new_status == OrderStatus.DELIVERED:
            service.send_delivery_confirmation(order)
        else:
            service.send_status_update(order, event.new_status)


class OrderTrackingUpdatedHandler(IEventHandler[OrderTrackingUpdated]):
    def handle(self, event: OrderTrackingUpdated) -> None:
        order = _load_order(event.aggregate_id)
        if order is not None:
            get_notification_service().send_shipping_notification(order)


class OrderCancelledHandler(IEventHandler[OrderCancelled]):
    def handle(self, event: OrderCancelled) -> None:
        order = _load_order(event.aggregate_id)
        if order is not None:
            get_notification_service().send_cancellation_confirmation(order)


order_placed_handler = OrderPlacedHandler()
order_status_changed_handler = OrderStatusChangedHandler()
order_tracking_updated_handler = OrderTrackingUpdatedHandler()
order_cancelled_handler = OrderCancelledHandler()
