"""Notification service.

Every notification is rendered from a Django template and written to
``NotificationLog`` as ``pending``.  Sending happens in the
``notifications.deliver`` Celery task, queued once the surrounding
transaction commits, so a slow or unreachable mail server never holds
up the request that triggered it.  The task retries with exponential
backoff and records the row as ``failed`` once retries run out.

Admin "new order" alerts are batched (see ``batching``) so a burst of
orders produces one digest instead of one email per order.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional
from uuid import UUID

import structlog
from django.conf import settings
from django.db import DatabaseError, transaction
from django.template.loader import render_to_string
from django.utils import timezone
from django.utils.module_loading import import_string

from modules.notifications.batching import NotificationBatcher, Scheduler
from modules.notifications.constants import (
    ADMIN_NEW_ORDER_BATCH_KEY,
    DEFAULT_BATCH_WINDOW_SECONDS,
    DEFAULT_MAX_RETRIES,
    STATUS_MESSAGES,
    NotificationStatus,
    NotificationType,
)
from modules.notifications.mailers import DjangoMailSender, IMailSender
from modules.notifications.models import NotificationLog

if TYPE_CHECKING:
    from modules.orders.models import Order

logger = structlog.get_logger(__name__)


def enqueue_delivery(log_id: UUID) -> None:
    from modules.notifications.tasks import deliver_notification

    deliver_notification.delay(str(log_id))


@dataclass(frozen=True)
class OutboundMessage:
    notification_type: str
    recipient_email: str
    subject: str
    body: str
    order_id: Optional[UUID] = None


class NotificationService:
    def __init__(
        self,
        mail_sender: IMailSender,
        scheduler: Scheduler,
        admin_email: Optional[str] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        batch_window_seconds: float = DEFAULT_BATCH_WINDOW_SECONDS,
        enqueue: Callable[[UUID], None] = enqueue_delivery,
    ) -> None:
        self._mail_sender = mail_sender
        self._admin_email = admin_email or settings.ADMIN_EMAIL
        self._max_retries = max(1, max_retries)
        self._enqueue = enqueue
        self._batcher: NotificationBatcher[OutboundMessage] = NotificationBatcher(
            dispatch=self._dispatch_batch,
            window_seconds=batch_window_seconds,
            scheduler=scheduler,
        )

    @property
    def max_retries(self) -> int:
        return self._max_retries

    # ------------------------------------------------------------------
    # Customer notifications
    # ------------------------------------------------------------------

    def send_order_confirmation(self, order: Order) -> Optional[NotificationLog]:
        return self._send_for_order(
            order,
            NotificationType.ORDER_CONFIRMATION,
            f"Order Confirmation - {order.order_number}",
            "notifications/order_confirmation.html",
        )

    def send_status_update(self, order: Order, new_status: str) -> Optional[NotificationLog]:
        return self._send_for_order(
            order,
            NotificationType.STATUS_UPDATE,
            f"Order {order.order_number} - Status Updated",
            "notifications/status_update.html",
            {
                "new_status": new_status,
                "status_message": STATUS_MESSAGES.get(new_status, ""),
            },
        )

    def send_shipping_notification(self, order: Order) -> Optional[NotificationLog]:
        return self._send_for_order(
            order,
            NotificationType.SHIPPING,
            f"Order {order.order_number} - Shipped",
            "notifications/shipping.html",
        )

    def send_delivery_confirmation(self, order: Order) -> Optional[NotificationLog]:
        return self._send_for_order(
            order,
            NotificationType.DELIVERY,
            f"Order {order.order_number} - Delivered",
            "notifications/delivery.html",
        )

    def send_cancellation_confirmation(self, order: Order) -> Optional[NotificationLog]:
        return self._send_for_order(
            order,
            NotificationType.CANCELLATION,
            f"Order {order.order_number} - Cancelled",
            "notifications/cancellation.html",
        )

    # ------------------------------------------------------------------
    # Admin notifications
    # ------------------------------------------------------------------

    def send_admin_new_order_alert(self, order: Order) -> int:
        """Queue a new-order alert; returns the current batch size."""
        message = OutboundMessage(
            notification_type=NotificationType.ADMIN_NEW_ORDER,
            recipient_email=self._admin_email,
            subject=f"New Order Received - {order.order_number}",
            body=self._render("notifications/admin_new_order.html", {"order": order}),
            order_id=order.id,
        )
        return self._batcher.add(ADMIN_NEW_ORDER_BATCH_KEY, message)

    def send_admin_priority(self, order: Order, reason: str) -> Optional[NotificationLog]:
        return self.deliver(
            OutboundMessage(
                notification_type=NotificationType.ADMIN_PRIORITY,
                recipient_email=self._admin_email,
                subject=f"PRIORITY: Order {order.order_number} Requires Attention",
                body=self._render(
                    "notifications/admin_priority.html", {"order": order, "reason": reason}
                ),
                order_id=order.id,
            )
        )

    def send_admin_payment_alert(
        self, payment_id: str, amount: Optional[Decimal], reason: str
    ) -> Optional[NotificationLog]:
        """A captured payment has no order and could not be refunded."""
        return self.deliver(
            OutboundMessage(
                notification_type=NotificationType.ADMIN_PRIORITY,
                recipient_email=self._admin_email,
                subject=f"PRIORITY: Payment {payment_id} Needs a Manual Refund",
                body=self._render(
                    "notifications/admin_rejected_payment.html",
                    {"payment_id": payment_id, "amount": amount, "reason": reason},
                ),
            )
        )

    def send_report_ready(self, job_id: UUID, recipient_email: str) -> Optional[NotificationLog]:
        return self.deliver(
            OutboundMessage(
                notification_type=NotificationType.REPORT_READY,
                recipient_email=recipient_email,
                subject="Your Report is Ready",
                body=self._render("notifications/report_ready.html", {"job_id": job_id}),
            )
        )

    # ------------------------------------------------------------------
    # Batching
    # ------------------------------------------------------------------

    def flush_batches(self) -> int:
        return self._batcher.flush_all()

    def get_batch_status(self) -> List[Dict[str, Any]]:
        return [status.as_dict() for status in self._batcher.status()]

    def _dispatch_batch(self, key: str, messages: List[OutboundMessage]) -> None:
        if len(messages) == 1:
            self.deliver(messages[0])
            return

        digest = OutboundMessage(
            notification_type=messages[0].notification_type,
            recipient_email=self._admin_email,
            subject=f"{len(messages)} New Orders Received",
            body=self._render(
                "notifications/admin_order_digest.html",
                {
                    "count": len(messages),
                    "summaries": [
                        m.subject.replace("New Order Received - ", "") for m in messages
                    ],
                },
            ),
        )
        try:
            # The digest is queued only after its per-order rows exist.
            with transaction.atomic():
                entry = self.deliver(digest)
                if entry is None:
                    return
                # One row per order so each alert stays traceable.
                NotificationLog.objects.bulk_create(
                    [
                        NotificationLog(
                            order_id=m.order_id,
                            digest=entry,
                            notification_type=m.notification_type,
                            recipient_email=m.recipient_email,
                            subject=m.subject,
                            body=m.body,
                        )
                        for m in messages
                    ]
                )
        except DatabaseError:
            logger.exception("notification.batch_log_failed", batch_key=key)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def deliver(self, message: OutboundMessage) -> Optional[NotificationLog]:
        """Record *message* as ``pending`` and queue it for sending on commit."""
        log = logger.bind(
            notification_type=message.notification_type,
            order_id=str(message.order_id) if message.order_id else None,
        )
        try:
            entry = NotificationLog.objects.create(
                order_id=message.order_id,
                notification_type=message.notification_type,
                recipient_email=message.recipient_email,
                subject=message.subject,
                body=message.body,
            )
        except DatabaseError:
            log.exception("notification.log_failed")
            return None

        transaction.on_commit(lambda: self._enqueue(entry.id))
        log.info("notification.queued", log_id=str(entry.id))
        return entry

    def attempt_delivery(self, log_id: UUID | str, attempt: int = 1) -> Optional[NotificationLog]:
        """Send one queued notification.

        Raises the mail error while *attempt* is below ``max_retries`` so
        the caller can retry.  The last attempt records the row as
        ``failed`` instead.  Rows that are missing or no longer pending are
        skipped, so a redelivered task never sends twice.
        """
        log = logger.bind(log_id=str(log_id), attempt=attempt)
        entry = NotificationLog.objects.filter(pk=log_id).first()
        if entry is None or entry.status != NotificationStatus.PENDING:
            log.info("notification.delivery_skipped")
            return entry

        try:
            self._mail_sender.send(entry.recipient_email, entry.subject, entry.body)
        except Exception as exc:
            entry.retry_count = attempt
            entry.error_message = str(exc) or type(exc).__name__
            log.warning("notification.send_failed", error=entry.error_message)
            if attempt < self._max_retries:
                entry.save(update_fields=["retry_count", "error_message"])
                raise
            entry.status = NotificationStatus.FAILED
            entry.save(update_fields=["status", "retry_count", "error_message"])
            NotificationLog.objects.filter(digest=entry).update(status=NotificationStatus.FAILED)
            log.error("notification.delivery_failed", attempts=attempt, error=entry.error_message)
            return entry

        entry.status = NotificationStatus.SENT
        entry.sent_at = timezone.now()
        entry.save(update_fields=["status", "sent_at"])
        NotificationLog.objects.filter(digest=entry).update(
            status=NotificationStatus.SENT, sent_at=entry.sent_at
        )
        log.info("notification.sent", attempts=attempt)
        return entry

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _send_for_order(
        self,
        order: Order,
        notification_type: str,
        subject: str,
        template: str,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Optional[NotificationLog]:
        recipient = self._customer_email(order)
        if not recipient:
            logger.warning(
                "notification.no_recipient",
                order_id=str(order.id),
                notification_type=notification_type,
            )
            return None
        context = {"order": order, **(extra or {})}
        return self.deliver(
            OutboundMessage(
                notification_type=notification_type,
                recipient_email=recipient,
                subject=subject,
                body=self._render(template, context),
                order_id=order.id,
            )
        )

    @staticmethod
    def _customer_email(order: Order) -> str:
        customer = getattr(order, "customer", None)
        email = getattr(customer, "email", "") if customer is not None else ""
        if not email and customer is not None and customer.user_id:
            email = customer.user.email
        return email or ""

    @staticmethod
    def _render(template: str, context: Dict[str, Any]) -> str:
        context = {
            "store_name": settings.STORE_NAME,
            "support_email": settings.SUPPORT_EMAIL,
            "frontend_url": settings.FRONTEND_URL,
            **context,
        }
        return render_to_string(template, context)


@lru_cache(maxsize=1)
def get_notification_service() -> NotificationService:
    """Process-wide service; batches live as long as the process."""
    scheduler_class = import_string(settings.NOTIFICATION_BATCH_SCHEDULER)
    return NotificationService(
        mail_sender=DjangoMailSender(),
        scheduler=scheduler_class(),
        max_retries=settings.NOTIFICATION_MAX_RETRIES,
        batch_window_seconds=settings.NOTIFICATION_BATCH_WINDOW_SECONDS,
    )
