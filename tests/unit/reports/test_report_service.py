"""Unit tests for ReportService with a mocked repository."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest

from modules.orders.constants import OrderStatus
from modules.reports.constants import ReportJobStatus
from modules.reports.dtos import AsyncReport, ReportFilters, SyncReport
from modules.reports.exceptions import ReportJobNotFound
from modules.reports.services import ReportService

pytestmark = pytest.mark.unit

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def repo():
    repo = MagicMock()
    repo.revenue_by_status.return_value = [
        (OrderStatus.DELIVERED, 2, Decimal("15000.00")),
        (OrderStatus.PENDING, 1, Decimal("2500.50")),
    ]
    repo.transition.return_value = True
    return repo


@pytest.fixture()
def notifications():
    return MagicMock()


@pytest.fixture()
def enqueued():
    return []


@pytest.fixture()
def service(repo, notifications, enqueued):
    return ReportService(
        report_repository=repo,
        notification_service=notifications,
        async_threshold=100,
        enqueue=enqueued.append,
        clock=lambda: NOW,
    )


def _job(**overrides):
    owner = SimpleNamespace(email="admin@example.com", user_id=1, user=SimpleNamespace(email="login@example.com"))
    values = dict(id=uuid4(), owner=owner, filters={"statuses": ["delivered"]}, status=ReportJobStatus.PROCESSING)
    values.update(overrides)
    return SimpleNamespace(**values)


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


class TestCalculateMetrics:
    def test_totals_and_average(self, service):
        metrics = service.calculate_metrics(ReportFilters())
        assert metrics.total_orders == 3
        assert metrics.total_revenue == Decimal("17500.50")
        assert metrics.average_order_value == Decimal("5833.50")
        assert [row.status for row in metrics.status_breakdown] == [
            OrderStatus.DELIVERED,
            OrderStatus.PENDING,
        ]

    def test_no_orders(self, service, repo):
        repo.revenue_by_status.return_value = []
        metrics = service.calculate_metrics(ReportFilters())
        assert metrics.total_orders == 0
        assert metrics.average_order_value == Decimal("0.00")

    def test_json_dump_uses_plain_values(self, service):
        dumped = service.calculate_metrics(ReportFilters()).model_dump(mode="json")
        assert dumped["total_revenue"] == "17500.50"
        assert dumped["status_breakdown"][0]["status"] == "delivered"


# ---------------------------------------------------------------------------
# generate_report
# ---------------------------------------------------------------------------


class TestGenerateReport:
    def test_small_result_set_is_synchronous(self, service, repo):
        repo.count_orders.return_value = 100
        report = service.generate_report(ReportFilters(), owner_id=uuid4())
        assert isinstance(report, SyncReport)
        repo.create_job.assert_not_called()

    def test_large_result_set_queues_job_after_commit(self, service, repo, enqueued):
        repo.count_orders.return_value = 101
        job = _job(status=ReportJobStatus.PENDING)
        repo.create_job.return_value = job
        owner_id = uuid4()
        filters = ReportFilters(
            date_from=NOW - timedelta(days=7),
            statuses=[OrderStatus.SHIPPED],
            product_id=uuid4(),
        )

        with patch("modules.reports.services.transaction.on_commit", side_effect=lambda fn: fn()) as on_commit:
            report = service.generate_report(filters, owner_id=owner_id)

        assert isinstance(report, AsyncReport)
        assert report.job_id == job.id
        on_commit.assert_called_once()
        assert enqueued == [job.id]
        stored_owner, stored_filters = repo.create_job.call_args.args
        assert stored_owner == owner_id
        assert stored_filters["statuses"] == ["shipped"]
        assert ReportFilters.model_validate(stored_filters) == filters

    def test_threshold_defaults_to_setting(self, repo, settings):
        settings.REPORT_ASYNC_THRESHOLD = 5
        assert ReportService(report_repository=repo).async_threshold == 5


# ---------------------------------------------------------------------------
# process_report_job
# ---------------------------------------------------------------------------


class TestProcessReportJob:
    def test_completes_and_notifies_owner(self, service, repo, notifications):
        job = _job()
        repo.get_job.return_value = job

        metrics = service.process_report_job(job.id)

        assert metrics.total_orders == 3
        claim, complete = repo.transition.call_args_list
        assert claim.args[:3] == (job.id, ReportJobStatus.PENDING, ReportJobStatus.PROCESSING)
        assert claim.args[3] == {"started_at": NOW}
        assert complete.args[1:3] == (ReportJobStatus.PROCESSING, ReportJobStatus.COMPLETED)
        assert complete.args[3]["result"]["total_orders"] == 3
        assert complete.args[3]["completed_at"] == NOW
        notifications.send_report_ready.assert_called_once_with(job.id, "admin@example.com")

    def test_already_claimed_job_is_skipped(self, service, repo, notifications):
        repo.transition.return_value = False
        assert service.process_report_job(uuid4()) is None
        repo.get_job.assert_not_called()
        notifications.send_report_ready.assert_not_called()

    def test_failure_is_recorded_and_reraised(self, service, repo, notifications):
        job = _job()
        repo.get_job.return_value = job
        repo.revenue_by_status.side_effect = RuntimeError("connection reset")

        with pytest.raises(RuntimeError):
            service.process_report_job(job.id)

        failed = repo.transition.call_args_list[-1]
        assert failed.args[1:3] == (ReportJobStatus.PROCESSING, ReportJobStatus.FAILED)
        assert failed.args[3]["error_message"] == "connection reset"
        notifications.send_report_ready.assert_not_called()

    def test_owner_without_profile_email_uses_login_email(self, service, repo, notifications):
        job = _job()
        job.owner.email = ""
        repo.get_job.return_value = job
        service.process_report_job(job.id)
        notifications.send_report_ready.assert_called_once_with(job.id, "login@example.com")


# ---------------------------------------------------------------------------
# Job queries
# ---------------------------------------------------------------------------


class TestJobQueries:
    def test_unknown_job(self, service, repo):
        repo.get_job.return_value = None
        with pytest.raises(ReportJobNotFound):
            service.get_report_job(uuid4(), owner_id=uuid4())

    def test_job_is_scoped_to_owner(self, service, repo):
        job_id, owner_id = uuid4(), uuid4()
        service.get_report_job(job_id, owner_id=owner_id)
        repo.get_job.assert_called_once_with(job_id, owner_id=owner_id)

    @pytest.mark.parametrize(("requested", "applied"), [(0, 1), (20, 20), (500, 100)])
    def test_list_limit_is_clamped(self, service, repo, requested, applied):
        owner_id = uuid4()
        service.list_report_jobs(owner_id, limit=requested)
        repo.list_jobs.assert_called_once_with(owner_id, applied)

    def test_cleanup_cutoff(self, service, repo):
        repo.delete_finished_before.return_value = 4
        assert service.cleanup_old_jobs(days_old=30) == 4
        repo.delete_finished_before.assert_called_once_with(NOW - timedelta(days=30))
