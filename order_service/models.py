"""
SQLAlchemy Database Models

The Order Store owned by the orchestrator:
- Orders and their status lifecycle
- Order/item association rows
- Per-order outbox of downstream side effects awaiting execution
"""

import enum

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
)
from sqlalchemy.sql import func

from order_service.core.state_machine import OrderStatus
from order_service.database import Base


class OrderEventType(str, enum.Enum):
    """Downstream side effects recorded in the outbox."""
    CREATE_DELIVERY = "create_delivery"
    CANCEL_DELIVERY = "cancel_delivery"


class OrderEventStatus(str, enum.Enum):
    """Outbox event lifecycle."""
    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"
    ABANDONED = "abandoned"


class Order(Base):
    """
    Main Order table.

    Rows are soft-deleted: ``deleted_at`` hides them from normal reads but
    keeps them for audit.
    """
    __tablename__ = "orders"

    # Primary Key
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # =========================================================================
    # OWNERSHIP
    # =========================================================================
    customer_id = Column(Integer, nullable=False, index=True)
    restaurant_id = Column(Integer, nullable=False, index=True)

    # =========================================================================
    # ORDER STATUS
    # =========================================================================
    status = Column(
        Enum(OrderStatus),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True
    )

    # =========================================================================
    # PRICING / DELIVERY
    # =========================================================================
    total_price = Column(Numeric(10, 2), nullable=False)
    address = Column(String(255), nullable=True)

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)

    def to_dict(self) -> dict:
        """Plain snapshot of the row, safe to embed in error payloads."""
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "restaurant_id": self.restaurant_id,
            "status": self.status.value if self.status else None,
            "total_price": float(self.total_price) if self.total_price is not None else None,
            "address": self.address,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Order #{self.id} - restaurant {self.restaurant_id} - {self.status.value}>"


class OrderItem(Base):
    """Association row linking an order to one catalog item reference."""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    item_id = Column(Integer, nullable=False)

    def __repr__(self):
        return f"<OrderItem order={self.order_id} item={self.item_id}>"


class OrderEvent(Base):
    """
    Outbox row for a downstream side effect of a status change.

    Written in the same transaction as the order update that requires it,
    then executed inline and, if that fails, retried by the reconciliation
    job until ``outbox_max_attempts``.
    """
    __tablename__ = "order_events"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    event_type = Column(Enum(OrderEventType), nullable=False)
    payload = Column(JSON, nullable=False, default=dict)

    status = Column(
        Enum(OrderEventStatus),
        default=OrderEventStatus.PENDING,
        nullable=False,
        index=True
    )
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    processed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<OrderEvent #{self.id} - {self.event_type.value} - order {self.order_id} - {self.status.value}>"
