"""Delivery log for every outbound notification.

Alerts folded into a digest point at the digest row through ``digest``
and take its final status.
"""

from django.db import models

from modules.core.models import BaseModel
from modules.notifications.constants import NotificationStatus, NotificationType


class NotificationLog(BaseModel):
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="notifications",
    )
    digest = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="batched",
    )
    notification_type = models.CharField(max_length=30, choices=NotificationType.choices)
    recipient_email = models.EmailField()
    subject = models.CharField(max_length=255)
    body = models.TextField(blank=True, default="")
    status = models.CharField(
        max_length=10,
        choices=NotificationStatus.choices,
        default=NotificationStatus.PENDING,
    )
    error_message = models.TextField(null=True, blank=True)
    retry_count = models.PositiveSmallIntegerField(default=0)
    sent_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "notification_log"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["notification_type", "status"]),
        ]

    def __str__(self) -> str:
        return f"{self.notification_type} -> {self.recipient_email} ({self.status})"
