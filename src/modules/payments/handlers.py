"""Event handlers for the payments app."""

from __future__ import annotations

import structlog

from modules.orders.events import OrderCancelled
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class RefundOnCancelHandler(IEventHandler[OrderCancelled]):
    """Queue the refund for a cancelled order whose payment was captured."""

    def handle(self, event: OrderCancelled) -> None:
        if not event.refund_required:
            return
        from modules.payments.tasks import process_refund

        process_refund.delay(str(event.aggregate_id))
        logger.info("refund.enqueued", order_id=str(event.aggregate_id))


refund_on_cancel_handler = RefundOnCancelHandler()
