"""Coupon repository interface."""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.coupons.models import Coupon, CouponUsage


class ICouponRepository(IRepository["Coupon"]):
    @abstractmethod
    def get_by_code(self, code: str) -> Optional[Coupon]:
        """Look up a coupon by its normalised (upper-case) code."""

    @abstractmethod
    def count_customer_usages(self, coupon_id: UUID, customer_id: UUID) -> int:
        """How many placed orders this customer has used the coupon on."""

    @abstractmethod
    def increment_usage(self, coupon_id: UUID) -> None:
        """Atomically add one to ``usage_count``."""

    @abstractmethod
    def record_usage(
        self, coupon_id: UUID, customer_id: UUID, order_id: Optional[UUID]
    ) -> CouponUsage:
        """Store one usage row for the per-customer limit."""

    @abstractmethod
    def list_active(self, now: datetime) -> List[Coupon]:
        """Active coupons whose validity window contains *now*."""
