"""
Order Orchestrator

Owns the order lifecycle: validates input, writes the Order Store, drives
the Delivery Ledger as the order progresses, publishes notifications and
builds enriched read views from the Directory and the Ledger.

There is no distributed transaction. The local write is always committed
first and is the source of truth:

    create      order + items (one transaction) → restaurant lookup → publish
    transition  order + outbox event (one transaction) → Ledger call → outbox result

A Ledger failure after the commit is raised as ``PartialFailureError``; the
outbox row keeps the side effect so ``reconcile_events`` can retry it
idempotently. Notification failures are logged and never fail a request.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any, Optional, Sequence

from order_service.core.config import Settings, get_settings
from order_service.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    OrderServiceError,
    PartialFailureError,
    ValidationError,
)
from order_service.core.state_machine import (
    DELIVERY_STATES,
    OrderStatus,
    TransitionPolicy,
    progress,
    validate_transition,
)
from order_service.models import Order, OrderEvent, OrderEventStatus, OrderEventType
from order_service.repository import BaseOrderRepository, new_delivery_event
from order_service.services.directory.base import BaseDirectoryService
from order_service.services.events.base import BaseEventPublisher, OutboundEvent
from order_service.services.ledger.base import BaseLedgerService

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    """Outcome of one reconciliation run."""
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    abandoned: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class OrderOrchestrator:
    """
    Order lifecycle orchestrator.

    All collaborators are injected, one interface per component, so each can
    be replaced by its in-memory implementation.

    Example:
        >>> orchestrator = OrderOrchestrator(
        ...     repository=SqlAlchemyOrderRepository(session),
        ...     directory=get_directory_service(),
        ...     ledger=get_ledger_service(),
        ...     publisher=get_event_publisher(),
        ... )
        >>> order = await orchestrator.create_order(1, 5, Decimal("1200"), [10, 11])
        >>> await orchestrator.transition_order(order.id, status="waiting_for_pickup", courier_id=7)
    """

    def __init__(
        self,
        repository: BaseOrderRepository,
        directory: BaseDirectoryService,
        ledger: BaseLedgerService,
        publisher: Optional[BaseEventPublisher] = None,
        settings: Optional[Settings] = None,
    ):
        self.repository = repository
        self.directory = directory
        self.ledger = ledger
        self.publisher = publisher
        self.settings = settings or get_settings()

    @property
    def policy(self) -> TransitionPolicy:
        return self.settings.transition_policy

    # =========================================================================
    # CREATE
    # =========================================================================

    async def create_order(
        self,
        customer_id: int,
        restaurant_id: int,
        total_price: Any,
        items: Any,
        status: Any = OrderStatus.PENDING,
        address: Optional[str] = None,
    ) -> Order:
        """
        Place a new order.

        Raises:
            ValidationError: Empty/invalid item list, negative price or an
                initial status other than pending. Nothing is written.
        """
        item_ids = self._validate_items(items)
        price = self._validate_price(total_price)
        initial_status = self._validate_initial_status(status)
        if address is not None and len(address) > 255:
            raise ValidationError("Address must not exceed 255 characters")

        order = await self.repository.create_order(
            customer_id=customer_id,
            restaurant_id=restaurant_id,
            status=initial_status,
            total_price=price,
            item_ids=item_ids,
            address=address,
        )
        logger.info(
            f"Order #{order.id} created for customer {customer_id} "
            f"at restaurant {restaurant_id} ({len(item_ids)} items)"
        )

        await self._notify_restaurant(order, len(item_ids))
        return order

    async def _notify_restaurant(self, order: Order, item_count: int) -> None:
        """Tell the restaurant owner about a new order. Never raises."""
        try:
            restaurant = await self.directory.get_restaurant(order.restaurant_id)
        except OrderServiceError as e:
            logger.warning(
                f"Order #{order.id}: could not resolve restaurant {order.restaurant_id}, "
                f"skipping notification ({e.message})"
            )
            return

        owner_id = restaurant.get("user_id") if isinstance(restaurant, dict) else None
        await self._publish(OutboundEvent(
            name="order_placed",
            channel="restaurant",
            recipient_id=order.restaurant_id,
            message=(
                f"New order #{order.id}: {item_count} item(s), "
                f"total {order.total_price}"
            ),
            data={"order_id": order.id, "owner_id": owner_id},
        ))

    # =========================================================================
    # TRANSITION
    # =========================================================================

    async def transition_order(
        self,
        order_id: int,
        status: Any = None,
        total_price: Any = None,
        courier_id: Optional[int] = None,
    ) -> Order:
        """
        Apply a partial update and run the side effect it requires.

        Raises:
            NotFoundError: Unknown or deleted order
            ValidationError / InvalidTransitionError: Rejected before writing
            PartialFailureError: The order was saved but the Ledger call failed
        """
        order = await self.repository.get_order(order_id)
        if order is None:
            raise NotFoundError(f"Order #{order_id} not found")

        new_status = self._parse_status(status) if status is not None else None
        new_price = self._validate_price(total_price) if total_price is not None else None
        if courier_id is not None and (not isinstance(courier_id, int) or courier_id <= 0):
            raise ValidationError("Courier ID must be a positive integer")

        previous_status = order.status
        if previous_status.is_terminal and (new_price is not None or courier_id is not None):
            raise InvalidTransitionError(
                f"Order #{order.id} is already {previous_status.value} and can no longer be edited",
                details={
                    "current_status": previous_status.value,
                    "total_price": str(new_price) if new_price is not None else None,
                    "courier_id": courier_id,
                },
            )
        if new_status is not None:
            validate_transition(previous_status, new_status, self.policy)
            order.status = new_status
        if new_price is not None:
            order.total_price = new_price

        event = self._side_effect_for(order, new_status, courier_id)
        order = await self.repository.save_order(order, event)
        logger.info(
            f"Order #{order.id} updated: {previous_status.value} → {order.status.value}"
            + (f" (outbox event #{event.id})" if event is not None else "")
        )

        if new_status is not None and new_status != previous_status:
            await self._notify_customer(order)

        if event is not None:
            await self._run_inline(order, event)

        return order

    def _side_effect_for(
        self,
        order: Order,
        new_status: Optional[OrderStatus],
        courier_id: Optional[int],
    ) -> Optional[OrderEvent]:
        if courier_id is None:
            return None
        if new_status == OrderStatus.WAITING_FOR_PICKUP:
            return new_delivery_event(OrderEventType.CREATE_DELIVERY, order.id, courier_id)
        if new_status == OrderStatus.CANCELLED:
            return new_delivery_event(OrderEventType.CANCEL_DELIVERY, order.id, courier_id)
        return None

    async def _run_inline(self, order: Order, event: OrderEvent) -> None:
        try:
            note = await self._execute(event, retry=False)
        except OrderServiceError as e:
            await self.repository.mark_event_failed(event, e.message)
            logger.error(
                f"Order #{order.id} is {order.status.value} but {event.event_type.value} "
                f"failed: {e.message} (outbox event #{event.id} kept for reconciliation)"
            )
            raise PartialFailureError(
                f"Order #{order.id} was updated to {order.status.value}, "
                f"but {event.event_type.value.replace('_', ' ')} failed: {e.message}",
                order=order.to_dict(),
                cause=e,
                event_id=event.id,
            ) from e

        await self.repository.mark_event_done(event, note)

    async def _notify_customer(self, order: Order) -> None:
        if not self.settings.notify_customer_on_status_change:
            return
        await self._publish(OutboundEvent(
            name="order_status_changed",
            channel="user",
            recipient_id=order.customer_id,
            message=f"Your order #{order.id} is now {order.status.value.replace('_', ' ')}",
            data={"order_id": order.id, "status": order.status.value},
        ))

    # =========================================================================
    # SIDE EFFECTS
    # =========================================================================

    async def _execute(self, event: OrderEvent, retry: bool) -> Optional[str]:
        """
        Perform the Ledger call an outbox event describes.

        Returns an optional note recorded on the event. On a retry, a
        conflict on creation means an earlier attempt already succeeded.
        """
        courier_id = int(event.payload["courier_id"])
        order_id = int(event.payload["order_id"])

        if event.event_type == OrderEventType.CREATE_DELIVERY:
            try:
                delivery = await self.ledger.create_delivery(courier_id, order_id)
            except ConflictError:
                if not retry:
                    raise
                existing = await self.ledger.get_delivery_for_order(order_id)
                if existing.courier_id != courier_id:
                    raise ConflictError(
                        f"Order #{order_id} is held by courier {existing.courier_id} "
                        f"(delivery #{existing.id}), not courier {courier_id}",
                        details={"delivery_id": existing.id, "courier_id": existing.courier_id},
                    )
                logger.info(f"Outbox event #{event.id}: delivery for order #{order_id} already exists")
                return "delivery already existed"
            return f"delivery #{delivery.id} created"

        if event.event_type == OrderEventType.CANCEL_DELIVERY:
            try:
                delivery = await self.ledger.find_active_by_courier(courier_id)
            except NotFoundError:
                logger.warning(f"Order #{order_id}: courier {courier_id} has no active delivery, nothing to cancel")
                return "no active delivery"

            if delivery.order_id != order_id:
                if self.settings.cancel_requires_matching_order:
                    logger.warning(
                        f"Order #{order_id}: active delivery #{delivery.id} of courier {courier_id} "
                        f"belongs to order #{delivery.order_id}, left untouched"
                    )
                    return f"active delivery #{delivery.id} belongs to another order"
                logger.warning(
                    f"Order #{order_id}: deactivating delivery #{delivery.id} of courier {courier_id}, "
                    f"which belongs to order #{delivery.order_id}"
                )

            await self.ledger.deactivate_delivery(delivery.id)
            return f"delivery #{delivery.id} deactivated"

        raise ValidationError(f"Unknown outbox event type: {event.event_type}")

    # =========================================================================
    # RECONCILIATION
    # =========================================================================

    async def reconcile_events(self, limit: Optional[int] = None) -> ReconcileReport:
        """Retry failed and stuck outbox events."""
        settings = self.settings
        events = await self.repository.list_retryable_events(
            max_attempts=settings.outbox_max_attempts,
            grace_seconds=settings.reconcile_grace_seconds,
            limit=limit or settings.reconcile_batch_size,
        )

        report = ReconcileReport()
        for event in events:
            report.attempted += 1
            try:
                note = await self._execute(event, retry=True)
            except OrderServiceError as e:
                # Another courier holds the order: retrying cannot fix that
                abandon = (
                    isinstance(e, ConflictError)
                    or (event.attempts or 0) + 1 >= settings.outbox_max_attempts
                )
                await self.repository.mark_event_failed(event, e.message, abandon=abandon)
                if abandon:
                    report.abandoned += 1
                    logger.error(
                        f"Outbox event #{event.id} ({event.event_type.value}, order #{event.order_id}) "
                        f"abandoned after {event.attempts} attempts: {e.message}"
                    )
                else:
                    report.failed += 1
                    logger.warning(f"Outbox event #{event.id} retry failed: {e.message}")
                continue

            await self.repository.mark_event_done(event, note)
            report.succeeded += 1
            logger.info(f"Outbox event #{event.id} reconciled ({note})")

        if report.attempted:
            logger.info(f"Reconciliation run: {report.to_dict()}")
        return report

    async def list_events(
        self,
        order_id: Optional[int] = None,
        status: Optional[OrderEventStatus] = None,
    ) -> list[OrderEvent]:
        if order_id is not None:
            await self.get_order(order_id, include_deleted=True)
        return await self.repository.list_events(order_id=order_id, status=status)

    # =========================================================================
    # READ / DELETE
    # =========================================================================

    async def get_order(self, order_id: int, include_deleted: bool = False) -> Order:
        order = await self.repository.get_order(order_id, include_deleted=include_deleted)
        if order is None:
            raise NotFoundError(f"Order #{order_id} not found")
        return order

    async def delete_order(self, order_id: int) -> Order:
        """Soft delete: the row stays for audit."""
        order = await self.get_order(order_id)
        order = await self.repository.soft_delete_order(order)
        logger.info(f"Order #{order_id} deleted")
        return order

    async def get_enriched_order(self, order_id: int, include_deleted: bool = False) -> dict[str, Any]:
        order = await self.get_order(order_id, include_deleted=include_deleted)
        item_ids = await self.repository.get_item_ids([order.id])
        return await self._enrich(order, item_ids[order.id])

    async def list_enriched_orders(
        self,
        restaurant_id: Optional[int] = None,
        customer_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> tuple[int, list[dict[str, Any]]]:
        """Enriched orders of a restaurant, of a customer, or all of them."""
        total, orders = await self.repository.list_orders(
            restaurant_id=restaurant_id,
            customer_id=customer_id,
            skip=skip,
            limit=limit,
        )
        item_ids = await self.repository.get_item_ids(o.id for o in orders)

        semaphore = asyncio.Semaphore(self.settings.enrichment_concurrency)

        async def enrich_one(order: Order) -> dict[str, Any]:
            async with semaphore:
                return await self._enrich(order, item_ids[order.id])

        views = await asyncio.gather(*(enrich_one(o) for o in orders))
        return total, list(views)

    async def _enrich(self, order: Order, item_ids: Sequence[int]) -> dict[str, Any]:
        """
        Merge an order with items, restaurant, customer and delivery.

        Each lookup degrades on its own: a failure leaves ``[]`` for items
        and ``None`` for the others.
        """
        wants_delivery = order.status in DELIVERY_STATES
        items, restaurant, customer, delivery = await asyncio.gather(
            self._lookup(order, "items", self.directory.get_items(list(item_ids)), []),
            self._lookup(order, "restaurant", self.directory.get_restaurant(order.restaurant_id), None),
            self._lookup(order, "customer", self.directory.get_user(order.customer_id), None),
            self._lookup(order, "delivery", self._delivery_view(order.id), None) if wants_delivery else _none(),
        )

        return {
            "id": order.id,
            "customer_id": order.customer_id,
            "restaurant_id": order.restaurant_id,
            "status": order.status,
            "total_price": float(order.total_price),
            "address": order.address,
            "created_at": order.created_at,
            "updated_at": order.updated_at,
            "deleted_at": order.deleted_at,
            "progress": progress(order.status),
            "items": items,
            "restaurant": restaurant,
            "customer": customer,
            "delivery": delivery,
        }

    async def _delivery_view(self, order_id: int) -> dict[str, Any]:
        delivery = await self.ledger.get_delivery_for_order(order_id)
        return delivery.to_dict()

    @staticmethod
    async def _lookup(order: Order, field: str, call: Any, fallback: Any) -> Any:
        """
        Await one enrichment call, returning ``fallback`` on any failure.

        The result must have the shape of the fallback: a list of objects
        for items, an object otherwise.
        """
        try:
            result = await call
        except NotFoundError:
            logger.debug(f"Order #{order.id}: {field} not found")
            return fallback
        except OrderServiceError as e:
            logger.warning(f"Order #{order.id}: {field} lookup failed ({e.message})")
            return fallback
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Order #{order.id}: malformed {field} payload ({e!r})")
            return fallback

        if isinstance(fallback, list):
            well_formed = isinstance(result, list) and all(isinstance(r, dict) for r in result)
        else:
            well_formed = isinstance(result, dict)
        if not well_formed:
            logger.warning(f"Order #{order.id}: malformed {field} payload ({type(result).__name__})")
            return fallback
        return result

    # =========================================================================
    # VALIDATION HELPERS
    # =========================================================================

    @staticmethod
    def _validate_items(items: Any) -> list[int]:
        if not isinstance(items, (list, tuple)) or not items:
            raise ValidationError("Items must be a non-empty array of item IDs")
        for item_id in items:
            if isinstance(item_id, bool) or not isinstance(item_id, int) or item_id <= 0:
                raise ValidationError(
                    "Every item ID must be a positive integer",
                    details={"invalid_item": repr(item_id)},
                )
        return list(items)

    @staticmethod
    def _validate_price(total_price: Any) -> Decimal:
        try:
            price = Decimal(str(total_price))
        except ArithmeticError:
            raise ValidationError("Total price must be a number")
        if not price.is_finite():
            raise ValidationError("Total price must be a number")
        if price < 0:
            raise ValidationError("Total price must be at least 0")
        return price

    @staticmethod
    def _parse_status(status: Any) -> OrderStatus:
        try:
            return OrderStatus.parse(status)
        except ValueError:
            valid = [s.value for s in OrderStatus]
            raise ValidationError(f"Status must be one of: {valid}")

    def _validate_initial_status(self, status: Any) -> OrderStatus:
        initial = self._parse_status(status if status is not None else OrderStatus.PENDING)
        if initial == OrderStatus.PENDING:
            return initial
        if self.policy == TransitionPolicy.PERMISSIVE and not initial.is_terminal:
            return initial
        raise ValidationError(
            f"New orders start as pending, got {initial.value}",
            details={"policy": self.policy.value},
        )

    async def _publish(self, event: OutboundEvent) -> None:
        """Best-effort publish. Never raises."""
        if self.publisher is None:
            return
        try:
            await self.publisher.publish(event)
        except Exception as e:
            logger.warning(f"Could not publish {event.name} for {event.channel} #{event.recipient_id}: {e}")


async def _none() -> None:
    return None
