"""Order reporting.

Small result sets are aggregated inside the request.  When more orders
match than ``REPORT_ASYNC_THRESHOLD``, a ``ReportJob`` is created and
handed to Celery once the creating transaction commits; the admin polls
the job for its metrics and receives a "report ready" email.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Callable, List, Optional
from uuid import UUID

import structlog
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from modules.notifications.services import NotificationService, get_notification_service
from modules.reports.constants import (
    DEFAULT_ASYNC_THRESHOLD,
    DEFAULT_JOB_LIST_LIMIT,
    JOB_RETENTION_DAYS,
    MAX_JOB_LIST_LIMIT,
    ReportJobStatus,
)
from modules.reports.dtos import (
    AsyncReport,
    ReportFilters,
    ReportMetrics,
    ReportResult,
    StatusBreakdown,
    SyncReport,
)
from modules.reports.exceptions import ReportJobNotFound
from modules.reports.repositories.interfaces import IReportRepository

if TYPE_CHECKING:
    from modules.reports.models import ReportJob

logger = structlog.get_logger(__name__)

CENTS = Decimal("0.01")


def _money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def enqueue_report_job(job_id: UUID) -> None:
    from modules.reports.tasks import process_report_job

    process_report_job.delay(str(job_id))


class ReportService:
    def __init__(
        self,
        report_repository: IReportRepository,
        notification_service: Optional[NotificationService] = None,
        async_threshold: Optional[int] = None,
        enqueue: Callable[[UUID], None] = enqueue_report_job,
        clock: Callable[[], datetime] = timezone.now,
    ) -> None:
        self._repository = report_repository
        self._notification_service = notification_service
        if async_threshold is None:
            async_threshold = getattr(settings, "REPORT_ASYNC_THRESHOLD", DEFAULT_ASYNC_THRESHOLD)
        self._async_threshold = async_threshold
        self._enqueue = enqueue
        self._clock = clock

    @property
    def async_threshold(self) -> int:
        return self._async_threshold

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate_report(self, filters: ReportFilters, owner_id: UUID) -> ReportResult:
        """Return metrics now, or queue a job when the result set is large."""
        log = logger.bind(owner_id=str(owner_id))
        order_count = self._repository.count_orders(filters)

        if order_count > self._async_threshold:
            job = self._repository.create_job(owner_id, filters.model_dump(mode="json"))
            transaction.on_commit(lambda: self._enqueue(job.id))
            log.info("report.job_queued", job_id=str(job.id), order_count=order_count)
            return AsyncReport(job_id=job.id)

        metrics = self.calculate_metrics(filters)
        log.info("report.generated", total_orders=metrics.total_orders)
        return SyncReport(metrics=metrics)

    def calculate_metrics(self, filters: ReportFilters) -> ReportMetrics:
        breakdown = [
            StatusBreakdown(status=status, count=count, total_revenue=_money(revenue))
            for status, count, revenue in self._repository.revenue_by_status(filters)
        ]
        total_orders = sum(row.count for row in breakdown)
        total_revenue = _money(sum((row.total_revenue for row in breakdown), Decimal("0")))
        average = _money(total_revenue / total_orders) if total_orders else Decimal("0.00")
        return ReportMetrics(
            total_orders=total_orders,
            total_revenue=total_revenue,
            average_order_value=average,
            status_breakdown=breakdown,
        )

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def process_report_job(self, job_id: UUID) -> Optional[ReportMetrics]:
        """Run a pending job to completion.

        A job that is no longer pending (already claimed by another
        worker, or finished) is left alone and ``None`` is returned.
        Failures are recorded on the job and re-raised.
        """
        log = logger.bind(job_id=str(job_id))
        claimed = self._repository.transition(
            job_id,
            ReportJobStatus.PENDING,
            ReportJobStatus.PROCESSING,
            {"started_at": self._clock()},
        )
        if not claimed:
            log.info("report.job_skipped")
            return None

        job = self._repository.get_job(job_id)
        log.info("report.job_started")
        try:
            metrics = self.calculate_metrics(ReportFilters.model_validate(job.filters))
        except Exception as exc:
            self._repository.transition(
                job_id,
                ReportJobStatus.PROCESSING,
                ReportJobStatus.FAILED,
                {
                    "error_message": str(exc) or type(exc).__name__,
                    "completed_at": self._clock(),
                },
            )
            log.exception("report.job_failed")
            raise

        self._repository.transition(
            job_id,
            ReportJobStatus.PROCESSING,
            ReportJobStatus.COMPLETED,
            {"result": metrics.model_dump(mode="json"), "completed_at": self._clock()},
        )
        log.info("report.job_completed", total_orders=metrics.total_orders)
        self._notify_owner(job)
        return metrics

    def get_report_job(self, job_id: UUID, owner_id: UUID) -> ReportJob:
        job = self._repository.get_job(job_id, owner_id=owner_id)
        if job is None:
            raise ReportJobNotFound("Report job not found", job_id=str(job_id))
        return job

    def list_report_jobs(self, owner_id: UUID, limit: int = DEFAULT_JOB_LIST_LIMIT) -> List[ReportJob]:
        limit = max(1, min(limit, MAX_JOB_LIST_LIMIT))
        return self._repository.list_jobs(owner_id, limit)

    def cleanup_old_jobs(self, days_old: int = JOB_RETENTION_DAYS) -> int:
        cutoff = self._clock() - timedelta(days=days_old)
        deleted = self._repository.delete_finished_before(cutoff)
        logger.info("report.jobs_cleaned", deleted=deleted, days_old=days_old)
        return deleted

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _notify_owner(self, job: ReportJob) -> None:
        owner = job.owner
        email = owner.email or (owner.user.email if owner.user_id else "")
        if not email:
            logger.warning("report.owner_without_email", job_id=str(job.id))
            return
        notifications = self._notification_service or get_notification_service()
        notifications.send_report_ready(job.id, email)
