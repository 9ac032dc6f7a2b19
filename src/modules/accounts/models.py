"""Storefront profile attached to a Django auth user.

The profile id is the domain-level user identifier: orders, coupon
usages and report jobs reference the profile, not ``auth.User``.
``role`` drives admin authorisation (``IsAdminRole``).
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from modules.accounts.constants import ProfileRole
from modules.core.models import BaseModel


class Profile(BaseModel):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="profile",
    )
    full_name = models.CharField(max_length=100, blank=True, default="")
    email = models.EmailField(max_length=254, blank=True, default="")
    phone = models.CharField(max_length=10, blank=True, default="")
    role = models.CharField(
        max_length=20,
        choices=ProfileRole.choices,
        default=ProfileRole.CUSTOMER,
    )

    class Meta:
        db_table = "profiles"
        ordering = ["-created_at"]

    @property
    def is_admin(self) -> bool:
        return self.role == ProfileRole.ADMIN

    def __str__(self) -> str:
        return f"{self.email or self.user_id} ({self.role})"
