"""Order repository interface.

Extends ``IRepository[Order]`` with the operations the Order aggregate
needs: atomic creation with items and initial history, a version-checked
conditional update, history appends, paginated search and the
payment-id / idempotency-key look-ups that make checkout replay-safe.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.core.pagination import Page
    from modules.orders.dtos import OrderFiltersDTO
    from modules.orders.models import Order, OrderStatusHistory


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root."""

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Order:
        """Persist header, items and the initial ``pending`` history row atomically.

        ``data`` holds the Order columns plus ``items`` (list of dicts
        with the OrderItem snapshot columns).
        """

    @abstractmethod
    def get_by_id(self, id: str, customer_id: Optional[UUID] = None) -> Optional[Order]:
        """Retrieve an order with prefetched items and status history."""

    @abstractmethod
    def get_by_number(self, order_number: str) -> Optional[Order]:
        """Retrieve an order by its human-facing number."""

    @abstractmethod
    def get_by_payment_id(self, payment_id: str) -> Optional[Order]:
        """Retrieve the order placed for a captured gateway payment."""

    @abstractmethod
    def get_by_idempotency_key(
        self, key: str, customer_id: Optional[UUID] = None
    ) -> Optional[Order]:
        """Retrieve an order by its idempotency key."""

    @abstractmethod
    def update_if_version(
        self, order_id: UUID, expected_version: int, changes: Dict[str, Any]
    ) -> bool:
        """Apply *changes* and bump ``version`` only if it still equals *expected_version*.

        Returns ``False`` when no row matched (concurrent modification).
        """

    @abstractmethod
    def add_history(
        self,
        order_id: UUID,
        status: str,
        old_status: Optional[str] = None,
        updated_by: Optional[UUID] = None,
        notes: str = "",
    ) -> OrderStatusHistory:
        """Append one entry to the order's audit trail."""

    @abstractmethod
    def search(self, filters: OrderFiltersDTO, page: int, limit: int) -> Page[Order]:
        """Filtered, newest-first page of orders."""
