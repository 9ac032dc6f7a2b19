"""Django ORM access to the delivery settings singleton."""

from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID

from django.db import transaction

from modules.delivery.exceptions import DeliverySettingsMissing
from modules.delivery.models import DeliverySettings
from modules.delivery.repositories.interfaces import IDeliverySettingsRepository


class DeliverySettingsDjangoRepository(IDeliverySettingsRepository):
    def get(self) -> Optional[DeliverySettings]:
        return DeliverySettings.objects.order_by("created_at").first()

    @transaction.atomic
    def update(
        self, changes: Dict[str, Any], updated_by: Optional[UUID] = None
    ) -> DeliverySettings:
        settings_row = (
            DeliverySettings.objects.select_for_update().order_by("created_at").first()
        )
        if settings_row is None:
            raise DeliverySettingsMissing("Delivery settings are not configured")
        for field, value in changes.items():
            setattr(settings_row, field, value)
        settings_row.updated_by_id = updated_by
        settings_row.full_clean()
        settings_row.save()
        return settings_row
