from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from uuid import UUID

from modules.delivery.models import DeliverySettings


class IDeliverySettingsRepository(ABC):
    @abstractmethod
    def get(self) -> Optional[DeliverySettings]: ...

    @abstractmethod
    def update(
        self, changes: Dict[str, Any], updated_by: Optional[UUID] = None
    ) -> DeliverySettings: ...
