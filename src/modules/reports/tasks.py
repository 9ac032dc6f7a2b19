"""Report worker tasks."""

from __future__ import annotations

from celery import shared_task

from modules.reports.constants import JOB_RETENTION_DAYS
from modules.reports.repositories.django_repository import ReportDjangoRepository
from modules.reports.services import ReportService


@shared_task(name="reports.process_report_job")
def process_report_job(job_id: str) -> dict:
    metrics = ReportService(report_repository=ReportDjangoRepository()).process_report_job(job_id)
    if metrics is None:
        return {"status": "skipped", "job_id": job_id}
    return {"status": "completed", "job_id": job_id, "total_orders": metrics.total_orders}


@shared_task(name="reports.cleanup_old_jobs")
def cleanup_old_jobs(days_old: int = JOB_RETENTION_DAYS) -> dict:
    deleted = ReportService(report_repository=ReportDjangoRepository()).cleanup_old_jobs(days_old)
    return {"deleted": deleted}
