"""Notification delivery tasks."""

from __future__ import annotations

import structlog
from celery import shared_task

from modules.notifications.constants import DEFAULT_MAX_RETRIES, RETRY_BACKOFF_BASE_SECONDS
from modules.notifications.services import get_notification_service

logger = structlog.get_logger(__name__)


@shared_task(bind=True, name="notifications.deliver", max_retries=DEFAULT_MAX_RETRIES)
def deliver_notification(self, log_id: str) -> dict:
    """Send a queued ``NotificationLog`` row, backing off 2s, 4s, ... between tries."""
    service = get_notification_service()
    attempt = self.request.retries + 1
    try:
        entry = service.attempt_delivery(log_id, attempt=attempt)
    except Exception as exc:
        raise self.retry(
            exc=exc,
            countdown=RETRY_BACKOFF_BASE_SECONDS**attempt,
            max_retries=service.max_retries,
        )

    if entry is None:
        logger.warning("notification.log_missing", log_id=log_id)
        return {"status": "missing", "log_id": log_id}
    return {"status": entry.status, "log_id": log_id, "retry_count": entry.retry_count}
