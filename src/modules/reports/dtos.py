"""Report DTOs (Pydantic v2, immutable).

``ReportFilters`` is snapshotted onto a ``ReportJob`` as JSON and read
back by the worker, so it must round-trip through ``model_dump``.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from modules.orders.constants import OrderStatus


class ReportFilters(BaseModel):
    model_config = ConfigDict(frozen=True)

    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    statuses: List[OrderStatus] = Field(default_factory=list)
    product_id: Optional[UUID] = None


class StatusBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: OrderStatus
    count: int
    total_revenue: Decimal


class ReportMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_orders: int
    total_revenue: Decimal
    average_order_value: Decimal
    status_breakdown: List[StatusBreakdown] = Field(default_factory=list)


class SyncReport(BaseModel):
    """Metrics computed inside the request."""

    model_config = ConfigDict(frozen=True)

    metrics: ReportMetrics


class AsyncReport(BaseModel):
    """A queued ``ReportJob``; poll it for the metrics."""

    model_config = ConfigDict(frozen=True)

    job_id: UUID


ReportResult = Union[SyncReport, AsyncReport]
