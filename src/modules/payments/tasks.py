"""Payment follow-up tasks."""

from __future__ import annotations

import structlog
from celery import shared_task

from modules.notifications.services import get_notification_service
from modules.orders.constants import PaymentStatus
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.payments.constants import RefundStatus
from modules.payments.exceptions import PaymentGatewayError
from modules.payments.gateways import get_payment_gateway
from modules.payments.models import RejectedPayment

logger = structlog.get_logger(__name__)

REFUND_MAX_RETRIES = 3
REFUND_RETRY_BASE_SECONDS = 30


@shared_task(bind=True, name="payments.process_refund", max_retries=REFUND_MAX_RETRIES)
def process_refund(self, order_id: str) -> dict:
    """Refund a cancelled order's captured payment.

    Idempotent: an order that no longer needs a refund is skipped.
    """
    log = logger.bind(order_id=order_id, attempt=self.request.retries + 1)
    service = OrderService(order_repository=OrderDjangoRepository())
    order = service.get_order(order_id)

    if not order.refund_required or order.payment_status != PaymentStatus.COMPLETED:
        log.info("refund.skipped", payment_status=order.payment_status)
        return {"status": "skipped", "order_id": order_id}
    if not order.payment_id:
        log.warning("refund.missing_payment_id")
        return {"status": "skipped", "order_id": order_id}

    try:
        refund = get_payment_gateway().refund_payment(order.payment_id, order.total)
    except PaymentGatewayError as exc:
        log.warning("refund.gateway_failed", error=exc.message)
        if self.request.retries >= self.max_retries:
            get_notification_service().send_admin_priority(
                order, f"Automatic refund failed: {exc.message}"
            )
            raise
        raise self.retry(exc=exc, countdown=REFUND_RETRY_BASE_SECONDS * 2**self.request.retries)

    service.record_refund(order.id)
    log.info("refund.completed", refund_id=refund.id, amount=str(refund.amount))
    return {"status": "refunded", "order_id": order_id, "refund_id": refund.id}


@shared_task(
    bind=True, name="payments.refund_rejected_payment", max_retries=REFUND_MAX_RETRIES
)
def refund_rejected_payment(self, rejection_id: str) -> dict:
    """Refund a captured payment that never became an order.

    The whole captured amount goes back.  Once retries run out the row is
    marked ``failed`` and an admin is alerted to refund it by hand.
    """
    log = logger.bind(rejection_id=rejection_id, attempt=self.request.retries + 1)
    rejection = RejectedPayment.objects.filter(pk=rejection_id).first()
    if rejection is None or rejection.refund_status != RefundStatus.PENDING:
        log.info("rejected_refund.skipped")
        return {"status": "skipped", "rejection_id": rejection_id}

    try:
        refund = get_payment_gateway().refund_payment(rejection.payment_id)
    except PaymentGatewayError as exc:
        log.warning("rejected_refund.gateway_failed", error=exc.message)
        if self.request.retries >= self.max_retries:
            rejection.refund_status = RefundStatus.FAILED
            rejection.error_message = exc.message
            rejection.save(update_fields=["refund_status", "error_message"])
            get_notification_service().send_admin_payment_alert(
                rejection.payment_id,
                rejection.amount,
                f"Automatic refund failed: {exc.message} (rejected: {rejection.reason})",
            )
            raise
        raise self.retry(exc=exc, countdown=REFUND_RETRY_BASE_SECONDS * 2**self.request.retries)

    rejection.refund_status = RefundStatus.REFUNDED
    rejection.refund_id = refund.id
    if rejection.amount is None:
        rejection.amount = refund.amount
    rejection.save(update_fields=["refund_status", "refund_id", "amount"])
    log.info("rejected_refund.completed", refund_id=refund.id, amount=str(refund.amount))
    return {"status": "refunded", "rejection_id": rejection_id, "refund_id": refund.id}
