"""Domain events for the Orders bounded context.

Published on the in-process bus by the HTTP boundary once the
mutation has committed; notification handlers subscribe to them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from shared.domain.events import DomainEvent


@dataclass(frozen=True, kw_only=True)
class OrderPlaced(DomainEvent):
    """Raised when an order is created."""

    order_number: str


@dataclass(frozen=True, kw_only=True)
class OrderStatusChanged(DomainEvent):
    """Raised when an admin moves an order along the state machine."""

    old_status: str
    new_status: str
    notes: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class OrderTrackingUpdated(DomainEvent):
    """Raised when tracking details are attached to an order."""

    tracking_number: str


@dataclass(frozen=True, kw_only=True)
class OrderCancelled(DomainEvent):
    """Raised when a customer cancels an order."""

    reason: Optional[str] = None
    refund_required: bool = False
