"""Role-based permissions backed by ``accounts.Profile``."""

from __future__ import annotations

import structlog
from rest_framework.permissions import BasePermission

logger = structlog.get_logger(__name__)


class IsAdminRole(BasePermission):
    """Allow only authenticated users whose stored profile role is ``admin``.

    Anonymous requests fail authentication first (401); authenticated
    users without the role are denied (403).
    """

    message = "Admin access required."

    def has_permission(self, request, view) -> bool:
        user = request.user
        if not (user and user.is_authenticated):
            return False
        profile = getattr(user, "profile", None)
        allowed = profile is not None and profile.is_admin
        if not allowed:
            logger.warning("auth.admin_denied", user_id=str(user.pk))
        return allowed


class HasProfile(BasePermission):
    """Authenticated user with a storefront profile (customer or admin)."""

    message = "A customer profile is required."

    def has_permission(self, request, view) -> bool:
        user = request.user
        return bool(
            user
            and user.is_authenticated
            and getattr(user, "profile", None) is not None
        )
