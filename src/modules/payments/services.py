"""Bookkeeping for captured payments that did not become an order."""

from __future__ import annotations

from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

import structlog
from django.db import transaction

from modules.payments.models import RejectedPayment

logger = structlog.get_logger(__name__)


def enqueue_rejected_refund(rejection_id: UUID) -> None:
    from modules.payments.tasks import refund_rejected_payment

    refund_rejected_payment.delay(str(rejection_id))


class RejectedPaymentService:
    def __init__(self, enqueue: Callable[[UUID], None] = enqueue_rejected_refund) -> None:
        self._enqueue = enqueue

    def is_rejected(self, payment_id: str) -> bool:
        return RejectedPayment.objects.filter(payment_id=payment_id).exists()

    @transaction.atomic
    def reject(
        self,
        payment_id: str,
        gateway_order_id: str,
        customer_id: Optional[UUID],
        reason: str,
        amount: Optional[Decimal] = None,
    ) -> RejectedPayment:
        """Record the rejection once and queue a full refund after commit."""
        rejection, created = RejectedPayment.objects.get_or_create(
            payment_id=payment_id,
            defaults={
                "gateway_order_id": gateway_order_id,
                "customer_id": customer_id,
                "reason": reason,
                "amount": amount,
            },
        )
        if created:
            transaction.on_commit(lambda: self._enqueue(rejection.id))
            logger.warning(
                "payment.rejected",
                payment_id=payment_id,
                gateway_order_id=gateway_order_id,
                reason=reason,
            )
        return rejection
