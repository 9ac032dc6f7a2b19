from django.urls import path

from modules.reports.views import AdminReportView, ReportJobDetailView, ReportJobListView

urlpatterns = [
    path("admin/reports/", AdminReportView.as_view(), name="admin_reports"),
    path("admin/reports/jobs/", ReportJobListView.as_view(), name="admin_report_jobs"),
    path(
        "admin/reports/<str:job_id>/",
        ReportJobDetailView.as_view(),
        name="admin_report_job_detail",
    ),
]
