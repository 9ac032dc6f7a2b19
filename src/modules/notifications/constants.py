from django.db import models


class NotificationType(models.TextChoices):
    ORDER_CONFIRMATION = "order_confirmation", "Order confirmation"
    STATUS_UPDATE = "status_update", "Status update"
    SHIPPING = "shipping", "Shipping"
    DELIVERY = "delivery", "Delivery"
    CANCELLATION = "cancellation", "Cancellation"
    ADMIN_NEW_ORDER = "admin_new_order", "Admin new order"
    ADMIN_PRIORITY = "admin_priority", "Admin priority"
    REPORT_READY = "report_ready", "Report ready"


class NotificationStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    SENT = "sent", "Sent"
    FAILED = "failed", "Failed"


ADMIN_NEW_ORDER_BATCH_KEY = NotificationType.ADMIN_NEW_ORDER.value

DEFAULT_MAX_RETRIES = 3
DEFAULT_BATCH_WINDOW_SECONDS = 60
RETRY_BACKOFF_BASE_SECONDS = 2

STATUS_MESSAGES = {
    "pending": "Your order has been received and is awaiting confirmation.",
    "confirmed": "Your order has been confirmed and will be processed soon.",
    "processing": "Your order is being prepared for shipment.",
    "shipped": "Your order has been shipped and is on its way.",
    "delivered": "Your order has been delivered.",
    "cancelled": "Your order has been cancelled.",
}
