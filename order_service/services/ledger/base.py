"""
Delivery Ledger Abstract Base Class

Defines the interface to the sibling service that owns Delivery records.
The Ledger enforces "at most one delivery per order"; the orchestrator only
requests creation and deactivation and never writes a delivery itself.

Contract:
    create_delivery(courier_id, order_id)  → ConflictError if the order already has one
    deactivate_delivery(delivery_id)       → idempotent
    find_active_by_courier(courier_id)     → NotFoundError if the courier has none
"""

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional


class DeliveryStatus(str, enum.Enum):
    """Courier assignment lifecycle."""
    ASSIGNED = "assigned"
    PICKED_UP = "picked_up"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


INACTIVE_DELIVERY_STATES = frozenset({DeliveryStatus.DELIVERED, DeliveryStatus.CANCELLED})


@dataclass
class Delivery:
    """
    A courier's assignment to one order, as reported by the Ledger.

    Attributes:
        id: Ledger identifier
        courier_id: Assigned courier (user id)
        order_id: Order being delivered
        status: Lifecycle state
        pickup_time: When the courier collected the order
        delivery_time: When the order reached the customer
        total_price: Price copied from the order, if the Ledger keeps it
        address: Delivery address, if the Ledger keeps it
    """
    id: int
    courier_id: int
    order_id: int
    status: DeliveryStatus = DeliveryStatus.ASSIGNED
    pickup_time: Optional[datetime] = None
    delivery_time: Optional[datetime] = None
    total_price: Optional[float] = None
    address: Optional[str] = None

    @property
    def active(self) -> bool:
        return self.status not in INACTIVE_DELIVERY_STATES

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "Delivery":
        """
        Build a delivery from a Ledger JSON object.

        The Ledger historically sends a boolean ``active`` (or ``status``
        boolean) instead of a lifecycle state; true maps to ``assigned`` and
        false to ``cancelled``.
        """
        raw_status = data.get("status")
        if isinstance(raw_status, str):
            status = DeliveryStatus(raw_status.lower())
        else:
            active = data.get("active", raw_status)
            status = DeliveryStatus.ASSIGNED if active in (None, True) else DeliveryStatus.CANCELLED

        return cls(
            id=int(data["id"]),
            courier_id=int(data.get("courier_id", data.get("user_id"))),
            order_id=int(data["order_id"]),
            status=status,
            pickup_time=_parse_datetime(data.get("pickup_time")),
            delivery_time=_parse_datetime(data.get("delivery_time")),
            total_price=float(data["total_price"]) if data.get("total_price") is not None else None,
            address=data.get("address"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "courier_id": self.courier_id,
            "order_id": self.order_id,
            "status": self.status.value,
            "active": self.active,
            "pickup_time": self.pickup_time.isoformat() if self.pickup_time else None,
            "delivery_time": self.delivery_time.isoformat() if self.delivery_time else None,
            "total_price": self.total_price,
            "address": self.address,
        }


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


class BaseLedgerService(ABC):
    """Abstract base class for Delivery Ledger clients."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""

    @abstractmethod
    async def create_delivery(self, courier_id: int, order_id: int) -> Delivery:
        """
        Assign a courier to an order.

        Raises:
            ConflictError: A delivery already exists for ``order_id``
        """

    @abstractmethod
    async def deactivate_delivery(self, delivery_id: int) -> Delivery:
        """
        Mark a delivery as cancelled. Calling it twice is harmless.

        Raises:
            NotFoundError: Unknown delivery
        """

    @abstractmethod
    async def find_active_by_courier(self, courier_id: int) -> Delivery:
        """
        Return the courier's active delivery.

        Raises:
            NotFoundError: The courier has no active delivery
        """

    @abstractmethod
    async def get_delivery_for_order(self, order_id: int) -> Delivery:
        """
        Return the delivery of an order, active or not.

        Raises:
            NotFoundError: The order has no delivery
        """

    @abstractmethod
    async def health_check(self) -> bool:
        """Check service connectivity."""

    async def close(self) -> None:
        """Release network resources."""
