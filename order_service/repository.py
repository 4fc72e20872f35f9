"""
Order Store

Persistence interface of the orchestrator and its SQLAlchemy implementation.
The orchestrator only talks to ``BaseOrderRepository``, so the store can be
swapped (another database, an in-memory fake) without touching the
orchestration logic.

Every write method commits its own unit of work. In particular an order and
its items are inserted together, and a status change and the outbox event
it requires are committed together.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from order_service.core.state_machine import OrderStatus
from order_service.models import (
    Order,
    OrderEvent,
    OrderEventStatus,
    OrderEventType,
    OrderItem,
)


class BaseOrderRepository(ABC):
    """Abstract Order Store."""

    @abstractmethod
    async def create_order(
        self,
        customer_id: int,
        restaurant_id: int,
        status: OrderStatus,
        total_price: Decimal,
        item_ids: Sequence[int],
        address: Optional[str] = None,
    ) -> Order:
        """Insert an order and one OrderItem per item id atomically."""

    @abstractmethod
    async def get_order(self, order_id: int, include_deleted: bool = False) -> Optional[Order]:
        """Load one order, or None."""

    @abstractmethod
    async def list_orders(
        self,
        restaurant_id: Optional[int] = None,
        customer_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> tuple[int, list[Order]]:
        """Return (total matching, page of orders), newest first."""

    @abstractmethod
    async def get_item_ids(self, order_ids: Iterable[int]) -> dict[int, list[int]]:
        """Map each order id to its item ids."""

    @abstractmethod
    async def save_order(self, order: Order, event: Optional[OrderEvent] = None) -> Order:
        """Persist changes to an order together with an optional outbox event."""

    @abstractmethod
    async def soft_delete_order(self, order: Order) -> Order:
        """Mark an order as deleted."""

    @abstractmethod
    async def get_event(self, event_id: int) -> Optional[OrderEvent]:
        """Load one outbox event."""

    @abstractmethod
    async def list_events(
        self,
        order_id: Optional[int] = None,
        status: Optional[OrderEventStatus] = None,
        limit: int = 100,
    ) -> list[OrderEvent]:
        """List outbox events, oldest first."""

    @abstractmethod
    async def list_retryable_events(
        self,
        max_attempts: int,
        grace_seconds: int,
        limit: int,
    ) -> list[OrderEvent]:
        """Failed events, and pending events older than the grace period."""

    @abstractmethod
    async def mark_event_done(self, event: OrderEvent, note: Optional[str] = None) -> OrderEvent:
        """Record a successful execution."""

    @abstractmethod
    async def mark_event_failed(
        self,
        event: OrderEvent,
        error: str,
        abandon: bool = False,
    ) -> OrderEvent:
        """Record a failed execution."""


class SqlAlchemyOrderRepository(BaseOrderRepository):
    """Order Store on an SQLAlchemy async session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def create_order(
        self,
        customer_id: int,
        restaurant_id: int,
        status: OrderStatus,
        total_price: Decimal,
        item_ids: Sequence[int],
        address: Optional[str] = None,
    ) -> Order:
        order = Order(
            customer_id=customer_id,
            restaurant_id=restaurant_id,
            status=status,
            total_price=total_price,
            address=address,
        )
        try:
            self.session.add(order)
            await self.session.flush()  # assigns order.id

            self.session.add_all(
                [OrderItem(order_id=order.id, item_id=item_id) for item_id in item_ids]
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        await self.session.refresh(order)
        return order

    async def get_order(self, order_id: int, include_deleted: bool = False) -> Optional[Order]:
        query = select(Order).where(Order.id == order_id)
        if not include_deleted:
            query = query.where(Order.deleted_at.is_(None))

        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_orders(
        self,
        restaurant_id: Optional[int] = None,
        customer_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> tuple[int, list[Order]]:
        conditions = [Order.deleted_at.is_(None)]
        if restaurant_id is not None:
            conditions.append(Order.restaurant_id == restaurant_id)
        if customer_id is not None:
            conditions.append(Order.customer_id == customer_id)

        count_query = select(func.count(Order.id)).where(*conditions)
        total_result = await self.session.execute(count_query)
        total = total_result.scalar() or 0

        query = (
            select(Order)
            .where(*conditions)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return total, list(result.scalars().all())

    async def get_item_ids(self, order_ids: Iterable[int]) -> dict[int, list[int]]:
        order_ids = list(order_ids)
        item_ids: dict[int, list[int]] = {order_id: [] for order_id in order_ids}
        if not order_ids:
            return item_ids

        result = await self.session.execute(
            select(OrderItem.order_id, OrderItem.item_id)
            .where(OrderItem.order_id.in_(order_ids))
            .order_by(OrderItem.id)
        )
        for order_id, item_id in result.all():
            item_ids[order_id].append(item_id)
        return item_ids

    async def save_order(self, order: Order, event: Optional[OrderEvent] = None) -> Order:
        try:
            self.session.add(order)
            if event is not None:
                self.session.add(event)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        await self.session.refresh(order)
        if event is not None:
            await self.session.refresh(event)
        return order

    async def soft_delete_order(self, order: Order) -> Order:
        order.deleted_at = datetime.now(timezone.utc)
        return await self.save_order(order)

    # =========================================================================
    # OUTBOX
    # =========================================================================

    async def get_event(self, event_id: int) -> Optional[OrderEvent]:
        result = await self.session.execute(select(OrderEvent).where(OrderEvent.id == event_id))
        return result.scalar_one_or_none()

    async def list_events(
        self,
        order_id: Optional[int] = None,
        status: Optional[OrderEventStatus] = None,
        limit: int = 100,
    ) -> list[OrderEvent]:
        query = select(OrderEvent)
        if order_id is not None:
            query = query.where(OrderEvent.order_id == order_id)
        if status is not None:
            query = query.where(OrderEvent.status == status)

        result = await self.session.execute(query.order_by(OrderEvent.id).limit(limit))
        return list(result.scalars().all())

    async def list_retryable_events(
        self,
        max_attempts: int,
        grace_seconds: int,
        limit: int,
    ) -> list[OrderEvent]:
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=grace_seconds)
        query = (
            select(OrderEvent)
            .where(
                OrderEvent.attempts < max_attempts,
                or_(
                    OrderEvent.status == OrderEventStatus.FAILED,
                    (OrderEvent.status == OrderEventStatus.PENDING)
                    & (OrderEvent.created_at <= cutoff),
                ),
            )
            .order_by(OrderEvent.id)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def mark_event_done(self, event: OrderEvent, note: Optional[str] = None) -> OrderEvent:
        event.status = OrderEventStatus.DONE
        event.attempts = (event.attempts or 0) + 1
        event.last_error = note
        event.processed_at = datetime.now(timezone.utc)
        return await self._save_event(event)

    async def mark_event_failed(
        self,
        event: OrderEvent,
        error: str,
        abandon: bool = False,
    ) -> OrderEvent:
        event.status = OrderEventStatus.ABANDONED if abandon else OrderEventStatus.FAILED
        event.attempts = (event.attempts or 0) + 1
        event.last_error = error
        return await self._save_event(event)

    async def _save_event(self, event: OrderEvent) -> OrderEvent:
        try:
            self.session.add(event)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        await self.session.refresh(event)
        return event


def new_delivery_event(
    event_type: OrderEventType,
    order_id: int,
    courier_id: int,
) -> OrderEvent:
    """Build an outbox row for a Ledger side effect."""
    return OrderEvent(
        order_id=order_id,
        event_type=event_type,
        payload={"order_id": order_id, "courier_id": courier_id},
        status=OrderEventStatus.PENDING,
        attempts=0,
    )
