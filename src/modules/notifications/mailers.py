"""Mail transport."""

from __future__ import annotations

from abc import ABC, abstractmethod

from django.conf import settings
from django.core.mail import send_mail
from django.utils.html import strip_tags


class IMailSender(ABC):
    @abstractmethod
    def send(self, recipient: str, subject: str, html_body: str) -> None:
        """Deliver one message or raise."""
        ...


class DjangoMailSender(IMailSender):
    """Sends through the configured ``EMAIL_BACKEND`` with an HTML alternative."""

    def __init__(self, from_email: str | None = None) -> None:
        self.from_email = from_email or settings.DEFAULT_FROM_EMAIL

    def send(self, recipient: str, subject: str, html_body: str) -> None:
        send_mail(
            subject=subject,
            message=strip_tags(html_body),
            from_email=self.from_email,
            recipient_list=[recipient],
            html_message=html_body,
            fail_silently=False,
        )
