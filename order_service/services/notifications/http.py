"""
HTTP Notification Service

Production client of the Notification Dispatcher.

Endpoints:
    POST /notify/restaurant  {restaurant_id, message}
    POST /notifications      {user_id, message}

The dispatcher answers 404 when the recipient has no open connection;
that is reported as an unsuccessful result. Only an unreachable dispatcher
raises, so that callers can retry it.
"""

import logging
from typing import Any, Optional

import httpx

from order_service.core.config import get_settings
from order_service.core.exceptions import DownstreamUnavailableError, OrderServiceError
from order_service.services.http import ServiceClient
from order_service.services.notifications.base import (
    BaseNotificationService,
    NotificationResult,
)

logger = logging.getLogger(__name__)


class HttpNotificationService(BaseNotificationService):
    """Notification Dispatcher over HTTP."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self._client = ServiceClient(
            "notifications",
            base_url or settings.notification_service_url,
            timeout=timeout or settings.http_timeout_seconds,
            transport=transport,
        )
        logger.info(f"HttpNotificationService initialized ({self._client.base_url})")

    @property
    def provider_name(self) -> str:
        return "http"

    async def _post(
        self,
        path: str,
        channel: str,
        recipient_id: int,
        body: dict[str, Any],
    ) -> NotificationResult:
        try:
            await self._client.post(path, json=body)
        except DownstreamUnavailableError:
            raise
        except OrderServiceError as e:
            logger.warning(f"Notification to {channel} #{recipient_id} not delivered: {e.message}")
            return NotificationResult(
                success=False,
                channel=channel,
                recipient_id=recipient_id,
                error_message=e.message,
                provider="http",
            )

        logger.info(f"Notification sent to {channel} #{recipient_id}")
        return NotificationResult(
            success=True,
            channel=channel,
            recipient_id=recipient_id,
            provider="http",
        )

    async def notify_restaurant(self, restaurant_id: int, message: str) -> NotificationResult:
        return await self._post(
            "/notify/restaurant",
            "restaurant",
            restaurant_id,
            {"restaurant_id": restaurant_id, "message": message},
        )

    async def notify_user(self, user_id: int, message: str) -> NotificationResult:
        return await self._post(
            "/notifications",
            "user",
            user_id,
            {"user_id": user_id, "message": message},
        )

    async def health_check(self) -> bool:
        return await self._client.ping()

    async def close(self) -> None:
        await self._client.aclose()
