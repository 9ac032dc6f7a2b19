"""Report repository interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple
from uuid import UUID

if TYPE_CHECKING:
    from modules.reports.dtos import ReportFilters
    from modules.reports.models import ReportJob


class IReportRepository(ABC):
    # ------------------------------------------------------------------
    # Order aggregation
    # ------------------------------------------------------------------

    @abstractmethod
    def count_orders(self, filters: ReportFilters) -> int:
        """Number of orders matching *filters*."""

    @abstractmethod
    def revenue_by_status(self, filters: ReportFilters) -> List[Tuple[str, int, Decimal]]:
        """``(status, order_count, revenue)`` per status present in the result set."""

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    @abstractmethod
    def create_job(self, owner_id: UUID, filters: Dict[str, Any]) -> ReportJob: ...

    @abstractmethod
    def get_job(self, job_id: UUID, owner_id: Optional[UUID] = None) -> Optional[ReportJob]: ...

    @abstractmethod
    def list_jobs(self, owner_id: UUID, limit: int) -> List[ReportJob]: ...

    @abstractmethod
    def transition(
        self, job_id: UUID, from_status: str, to_status: str, changes: Dict[str, Any]
    ) -> bool:
        """Move the job to *to_status* only if it is still in *from_status*."""

    @abstractmethod
    def delete_finished_before(self, cutoff: datetime) -> int:
        """Delete completed/failed jobs finished before *cutoff*; returns the count."""
