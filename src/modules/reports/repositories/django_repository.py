"""Django ORM implementation of ``IReportRepository``."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from django.db.models import Count, DecimalField, QuerySet, Sum, Value
from django.db.models.functions import Coalesce
from django.utils import timezone

from modules.orders.models import Order, OrderItem
from modules.reports.constants import FINISHED_STATUSES
from modules.reports.dtos import ReportFilters
from modules.reports.models import ReportJob
from modules.reports.repositories.interfaces import IReportRepository


class ReportDjangoRepository(IReportRepository):
    def _orders(self, filters: ReportFilters) -> QuerySet:
        queryset = Order.objects.all()
        if filters.date_from:
            queryset = queryset.filter(created_at__gte=filters.date_from)
        if filters.date_to:
            queryset = queryset.filter(created_at__lte=filters.date_to)
        if filters.statuses:
            queryset = queryset.filter(status__in=filters.statuses)
        if filters.product_id:
            # Subquery rather than a join so multi-item orders count once.
            queryset = queryset.filter(
                id__in=OrderItem.objects.filter(product_id=filters.product_id).values("order_id")
            )
        return queryset

    def count_orders(self, filters: ReportFilters) -> int:
        return self._orders(filters).count()

    def revenue_by_status(self, filters: ReportFilters) -> List[Tuple[str, int, Decimal]]:
        rows = (
            self._orders(filters)
            .order_by()
            .values("status")
            .annotate(
                order_count=Count("id"),
                revenue=Coalesce(
                    Sum("total"),
                    Value(Decimal("0")),
                    output_field=DecimalField(max_digits=14, decimal_places=2),
                ),
            )
            .order_by("status")
        )
        return [(row["status"], row["order_count"], row["revenue"]) for row in rows]

    def create_job(self, owner_id: UUID, filters: Dict[str, Any]) -> ReportJob:
        return ReportJob.objects.create(owner_id=owner_id, filters=filters)

    def get_job(self, job_id: UUID, owner_id: Optional[UUID] = None) -> Optional[ReportJob]:
        queryset = ReportJob.objects.select_related("owner", "owner__user")
        if owner_id is not None:
            queryset = queryset.filter(owner_id=owner_id)
        return queryset.filter(pk=job_id).first()

    def list_jobs(self, owner_id: UUID, limit: int) -> List[ReportJob]:
        return list(
            ReportJob.objects.filter(owner_id=owner_id).order_by("-created_at", "-id")[:limit]
        )

    def transition(
        self, job_id: UUID, from_status: str, to_status: str, changes: Dict[str, Any]
    ) -> bool:
        updated = ReportJob.objects.filter(pk=job_id, status=from_status).update(
            status=to_status, updated_at=timezone.now(), **changes
        )
        return updated == 1

    def delete_finished_before(self, cutoff: datetime) -> int:
        deleted, _ = ReportJob.objects.filter(
            status__in=FINISHED_STATUSES, completed_at__lt=cutoff
        ).delete()
        return deleted
