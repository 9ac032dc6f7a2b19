"""Admin reporting API.

- ``GET /api/admin/reports/``: metrics (200) or a queued job (202).
- ``GET /api/admin/reports/jobs/``: the caller's recent jobs.
- ``GET /api/admin/reports/{job_id}/``: a job's state; 200 completed,
  202 pending/processing, 404 unknown, 500 failed.
"""

from __future__ import annotations

from rest_framework import status
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from modules.core.exceptions import error_response, validation_error_response
from modules.core.permissions import IsAdminRole
from modules.core.validation import (
    as_aware_datetime,
    validate_date_range,
    validate_number,
    validate_order_status,
    validate_uuid,
)
from modules.reports.constants import DEFAULT_JOB_LIST_LIMIT, MAX_JOB_LIST_LIMIT, ReportJobStatus
from modules.reports.dtos import AsyncReport, ReportFilters
from modules.reports.repositories.django_repository import ReportDjangoRepository
from modules.reports.serializers import ReportJobSerializer
from modules.reports.services import ReportService
from shared.domain.errors import DomainError

ASYNC_MESSAGE = "Report is being generated. Use the job ID to check status."


def _report_service() -> ReportService:
    return ReportService(report_repository=ReportDjangoRepository())


class AdminReportView(APIView):
    """GET /api/admin/reports/

    Query: ``dateFrom``, ``dateTo``, ``status`` (comma-separated),
    ``product_id``.
    """

    permission_classes = [IsAdminRole]

    def get(self, request: Request) -> Response:
        params = request.query_params

        date_range = validate_date_range(params.get("dateFrom"), params.get("dateTo"))
        if not date_range.is_valid:
            return validation_error_response(date_range.error)
        date_from, date_to = date_range.sanitized

        statuses = []
        for raw in (params.get("status") or "").split(","):
            if not raw.strip():
                continue
            result = validate_order_status(raw)
            if not result.is_valid:
                return validation_error_response(result.error)
            statuses.append(result.sanitized)

        product_id = None
        if params.get("product_id"):
            result = validate_uuid(params["product_id"], "Product ID")
            if not result.is_valid:
                return validation_error_response(result.error)
            product_id = result.sanitized

        filters = ReportFilters(
            date_from=as_aware_datetime(date_from),
            date_to=as_aware_datetime(date_to, end_of_day=True),
            statuses=statuses,
            product_id=product_id,
        )
        report = _report_service().generate_report(filters, owner_id=request.user.profile.id)

        if isinstance(report, AsyncReport):
            return Response(
                {
                    "jobId": str(report.job_id),
                    "status": ReportJobStatus.PROCESSING.value,
                    "message": ASYNC_MESSAGE,
                },
                status=status.HTTP_202_ACCEPTED,
            )
        return Response(report.metrics.model_dump(mode="json"))


class ReportJobListView(APIView):
    """GET /api/admin/reports/jobs/?limit="""

    permission_classes = [IsAdminRole]

    def get(self, request: Request) -> Response:
        limit = DEFAULT_JOB_LIST_LIMIT
        if request.query_params.get("limit"):
            result = validate_number(
                request.query_params["limit"], "Limit", 1, MAX_JOB_LIST_LIMIT
            )
            if not result.is_valid:
                return validation_error_response(result.error)
            limit = int(result.sanitized)

        jobs = _report_service().list_report_jobs(request.user.profile.id, limit=limit)
        return Response({"jobs": ReportJobSerializer(jobs, many=True).data, "total": len(jobs)})


class ReportJobDetailView(APIView):
    """GET /api/admin/reports/{job_id}/"""

    permission_classes = [IsAdminRole]

    def get(self, request: Request, job_id: str) -> Response:
        result = validate_uuid(job_id, "Job ID")
        if not result.is_valid:
            return validation_error_response(result.error)
        try:
            job = _report_service().get_report_job(result.sanitized, request.user.profile.id)
        except DomainError as exc:
            return error_response(exc)

        if job.status == ReportJobStatus.COMPLETED:
            return Response(
                {"status": job.status, "data": job.result, "completedAt": job.completed_at}
            )
        if job.status == ReportJobStatus.FAILED:
            return Response(
                {
                    "status": job.status,
                    "error": job.error_message or "Report generation failed",
                    "completedAt": job.completed_at,
                },
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )
        if job.status == ReportJobStatus.PROCESSING:
            return Response(
                {
                    "status": job.status,
                    "startedAt": job.started_at,
                    "message": "Report is being generated. Please check back shortly.",
                },
                status=status.HTTP_202_ACCEPTED,
            )
        return Response(
            {
                "status": job.status,
                "createdAt": job.created_at,
                "message": "Report job is queued and will start processing soon.",
            },
            status=status.HTTP_202_ACCEPTED,
        )
