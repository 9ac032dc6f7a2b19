"""Asynchronous report jobs.

A job moves ``pending -> processing -> completed | failed`` exactly once;
the repository enforces each step with a conditional update on
``status``.
"""

from __future__ import annotations

from django.db import models

from modules.core.models import BaseModel
from modules.reports.constants import ReportJobStatus


class ReportJob(BaseModel):
    owner = models.ForeignKey(
        "accounts.Profile",
        on_delete=models.CASCADE,
        related_name="report_jobs",
    )
    status = models.CharField(
        max_length=20,
        choices=ReportJobStatus.choices,
        default=ReportJobStatus.PENDING,
        db_index=True,
    )
    filters = models.JSONField(default=dict, blank=True)
    result = models.JSONField(null=True, blank=True)
    error_message = models.TextField(blank=True, default="")
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "report_jobs"
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["owner", "-created_at"])]

    @property
    def is_finished(self) -> bool:
        return self.status in (ReportJobStatus.COMPLETED, ReportJobStatus.FAILED)

    def __str__(self) -> str:
        return f"ReportJob {self.id} ({self.status})"
