from django.apps import AppConfig


class NotificationsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.notifications"
    label = "notifications"

    def ready(self) -> None:
        from modules.notifications.handlers import (
            order_cancelled_handler,
            order_placed_handler,
            order_status_changed_handler,
            order_tracking_updated_handler,
        )
        from modules.orders.events import (
            OrderCancelled,
            OrderPlaced,
            OrderStatusChanged,
            OrderTrackingUpdated,
        )
        from shared.infrastructure.bus import event_bus

        event_bus.subscribe(OrderPlaced, order_placed_handler)
        event_bus.subscribe(OrderStatusChanged, order_status_changed_handler)
        event_bus.subscribe(OrderTrackingUpdated, order_tracking_updated_handler)
        event_bus.subscribe(OrderCancelled, order_cancelled_handler)
