"""
Mock Notification Service

Simulates the Notification Dispatcher for development.
No message leaves the process - messages are logged and kept in ``sent``.
"""

import asyncio
import logging
import random

from order_service.services.notifications.base import (
    BaseNotificationService,
    NotificationResult,
)

logger = logging.getLogger(__name__)


class MockNotificationService(BaseNotificationService):
    """Mock notification service for development."""

    def __init__(self, failure_rate: float = 0.0, latency: float = 0.0):
        self.failure_rate = failure_rate
        self.latency = latency
        self.sent: list[NotificationResult] = []
        self.messages: list[tuple[str, int, str]] = []
        logger.info(f"MockNotificationService initialized (failure_rate={failure_rate:.0%})")

    @property
    def provider_name(self) -> str:
        return "mock"

    async def _simulate_latency(self) -> None:
        """Simulate network latency."""
        if self.latency:
            await asyncio.sleep(random.uniform(0, self.latency))

    def _should_fail(self) -> bool:
        return random.random() < self.failure_rate

    async def _deliver(self, channel: str, recipient_id: int, message: str) -> NotificationResult:
        await self._simulate_latency()

        if self._should_fail():
            logger.warning(f"Mock {channel} notification failed (simulated) to #{recipient_id}")
            return NotificationResult(
                success=False,
                channel=channel,
                recipient_id=recipient_id,
                error_message="Simulated notification failure",
                provider="mock",
            )

        logger.info(f"Mock {channel} notification to #{recipient_id}: {message[:50]}")
        result = NotificationResult(
            success=True,
            channel=channel,
            recipient_id=recipient_id,
            provider="mock",
        )
        self.sent.append(result)
        self.messages.append((channel, recipient_id, message))
        return result

    async def notify_restaurant(self, restaurant_id: int, message: str) -> NotificationResult:
        """Simulate notifying a restaurant."""
        return await self._deliver("restaurant", restaurant_id, message)

    async def notify_user(self, user_id: int, message: str) -> NotificationResult:
        """Simulate notifying a user."""
        return await self._deliver("user", user_id, message)

    async def health_check(self) -> bool:
        """Mock always returns healthy."""
        return True
