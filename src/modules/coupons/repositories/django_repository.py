"""Django ORM implementation of the Coupon repository."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog
from django.db.models import F, QuerySet

from modules.coupons.models import Coupon, CouponUsage
from modules.coupons.repositories.interfaces import ICouponRepository

logger = structlog.get_logger(__name__)


class CouponDjangoRepository(ICouponRepository):
    def get_by_id(self, id: str) -> Optional[Coupon]:
        return Coupon.objects.filter(id=id).first()

    def get_by_code(self, code: str) -> Optional[Coupon]:
        return Coupon.objects.filter(code=code).first()

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        queryset = Coupon.objects.all()
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def list_active(self, now: datetime) -> List[Coupon]:
        return list(
            Coupon.objects.filter(
                is_active=True, valid_from__lte=now, valid_until__gte=now
            ).order_by("valid_until")
        )

    def save(self, entity: Coupon) -> Coupon:
        entity.save()
        logger.info("coupon.saved", coupon_code=entity.code)
        return entity

    def count_customer_usages(self, coupon_id: UUID, customer_id: UUID) -> int:
        return CouponUsage.objects.filter(
            coupon_id=coupon_id, customer_id=customer_id
        ).count()

    def increment_usage(self, coupon_id: UUID) -> None:
        Coupon.objects.filter(id=coupon_id).update(usage_count=F("usage_count") + 1)

    def record_usage(
        self, coupon_id: UUID, customer_id: UUID, order_id: Optional[UUID]
    ) -> CouponUsage:
        return CouponUsage.objects.create(
            coupon_id=coupon_id, customer_id=customer_id, order_id=order_id
        )
