from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.payments"
    label = "payments"

    def ready(self) -> None:
        from modules.orders.events import OrderCancelled
        from modules.payments.handlers import refund_on_cancel_handler
        from shared.infrastructure.bus import event_bus

        event_bus.subscribe(OrderCancelled, refund_on_cancel_handler)
