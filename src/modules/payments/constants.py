from django.db import models


class RefundStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    REFUNDED = "refunded", "Refunded"
    FAILED = "failed", "Failed"
