"""
HTTP Delivery Ledger

Production client of the delivery service.

Endpoints:
    POST /deliveries               {courier_id, order_id, active}
    PUT  /deliveries/{id}/status   {active, status}
    GET  /deliveries?courier_id=   active delivery of a courier
    GET  /deliveries?order_id=     delivery of an order
"""

import logging
from typing import Any, Optional

import httpx

from order_service.core.config import get_settings
from order_service.core.exceptions import NotFoundError
from order_service.services.http import ServiceClient, unwrap
from order_service.services.ledger.base import BaseLedgerService, Delivery, DeliveryStatus

logger = logging.getLogger(__name__)


class HttpLedgerService(BaseLedgerService):
    """Delivery Ledger over HTTP."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self._client = ServiceClient(
            "ledger",
            base_url or settings.delivery_service_url,
            timeout=timeout or settings.http_timeout_seconds,
            transport=transport,
        )
        logger.info(f"HttpLedgerService initialized ({self._client.base_url})")

    @property
    def provider_name(self) -> str:
        return "http"

    async def create_delivery(self, courier_id: int, order_id: int) -> Delivery:
        body = await self._client.post(
            "/deliveries",
            json={"courier_id": courier_id, "order_id": order_id, "active": True},
        )
        delivery = Delivery.from_payload(unwrap(body, "delivery"))
        logger.info(f"Delivery #{delivery.id} created (courier {courier_id}, order #{order_id})")
        return delivery

    async def deactivate_delivery(self, delivery_id: int) -> Delivery:
        body = await self._client.put(
            f"/deliveries/{delivery_id}/status",
            json={"active": False, "status": DeliveryStatus.CANCELLED.value},
        )
        logger.info(f"Delivery #{delivery_id} deactivated")
        return Delivery.from_payload(unwrap(body, "delivery"))

    async def find_active_by_courier(self, courier_id: int) -> Delivery:
        body = await self._client.get("/deliveries", params={"courier_id": courier_id})
        for delivery in self._parse_many(body):
            if delivery.courier_id == courier_id and delivery.active:
                return delivery
        raise NotFoundError(f"No active delivery for courier #{courier_id}")

    async def get_delivery_for_order(self, order_id: int) -> Delivery:
        body = await self._client.get("/deliveries", params={"order_id": order_id})
        for delivery in self._parse_many(body):
            if delivery.order_id == order_id:
                return delivery
        raise NotFoundError(f"No delivery for order #{order_id}")

    async def health_check(self) -> bool:
        return await self._client.ping()

    async def close(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _parse_many(body: Any) -> list[Delivery]:
        if isinstance(body, dict):
            if "deliveries" in body:
                body = body["deliveries"]
            elif "delivery" in body:
                body = [body["delivery"]]
            else:
                body = [body]
        return [Delivery.from_payload(item) for item in body or []]
