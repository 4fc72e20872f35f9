"""
Mock Delivery Ledger

In-memory Ledger for development and tests. Enforces the same contract
as the real service: one delivery per order, idempotent deactivation,
lookup of a courier's active delivery.
"""

import itertools
import logging
import random
from datetime import datetime, timezone

from order_service.core.exceptions import (
    ConflictError,
    DownstreamError,
    DownstreamUnavailableError,
    NotFoundError,
)
from order_service.services.ledger.base import BaseLedgerService, Delivery, DeliveryStatus

logger = logging.getLogger(__name__)


class MockLedgerService(BaseLedgerService):
    """
    Mock implementation of the Delivery Ledger.

    Attributes:
        deliveries: id → Delivery
        available: When False every call raises DownstreamUnavailableError
        reject_writes: When True create/deactivate answer with a DownstreamError
        failure_rate: Probability of a simulated outage per call
    """

    def __init__(self, failure_rate: float = 0.0):
        self.deliveries: dict[int, Delivery] = {}
        self.failure_rate = failure_rate
        self.available = True
        self.reject_writes = False
        self._ids = itertools.count(1)

        logger.info(f"MockLedgerService initialized (failure_rate={failure_rate:.0%})")

    @property
    def provider_name(self) -> str:
        return "mock"

    def _check_available(self) -> None:
        if not self.available or random.random() < self.failure_rate:
            raise DownstreamUnavailableError("Ledger unavailable (simulated)", service="ledger")

    def _check_writable(self) -> None:
        self._check_available()
        if self.reject_writes:
            raise DownstreamError("Ledger rejected the write (simulated)", service="ledger", status=500)

    async def create_delivery(self, courier_id: int, order_id: int) -> Delivery:
        self._check_writable()

        if any(d.order_id == order_id for d in self.deliveries.values()):
            raise ConflictError(f"Delivery for order #{order_id} already exists")

        delivery = Delivery(
            id=next(self._ids),
            courier_id=courier_id,
            order_id=order_id,
            status=DeliveryStatus.ASSIGNED,
            pickup_time=datetime.now(timezone.utc),
        )
        self.deliveries[delivery.id] = delivery
        logger.info(f"Mock delivery #{delivery.id} created (courier {courier_id}, order #{order_id})")
        return delivery

    async def deactivate_delivery(self, delivery_id: int) -> Delivery:
        self._check_writable()

        delivery = self.deliveries.get(delivery_id)
        if delivery is None:
            raise NotFoundError(f"Delivery #{delivery_id} not found")

        if delivery.active:
            delivery.status = DeliveryStatus.CANCELLED
            logger.info(f"Mock delivery #{delivery_id} deactivated")
        return delivery

    async def find_active_by_courier(self, courier_id: int) -> Delivery:
        self._check_available()

        for delivery in self.deliveries.values():
            if delivery.courier_id == courier_id and delivery.active:
                return delivery
        raise NotFoundError(f"No active delivery for courier #{courier_id}")

    async def get_delivery_for_order(self, order_id: int) -> Delivery:
        self._check_available()

        for delivery in self.deliveries.values():
            if delivery.order_id == order_id:
                return delivery
        raise NotFoundError(f"No delivery for order #{order_id}")

    async def health_check(self) -> bool:
        return self.available
