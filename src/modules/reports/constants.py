from django.db import models


class ReportJobStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


FINISHED_STATUSES = (ReportJobStatus.COMPLETED, ReportJobStatus.FAILED)

DEFAULT_ASYNC_THRESHOLD = 1000
DEFAULT_JOB_LIST_LIMIT = 20
MAX_JOB_LIST_LIMIT = 100
JOB_RETENTION_DAYS = 30
