"""
Mock Event Publisher

Keeps published events in memory. When given a notification service it
also delivers each event in a background task, so development mode shows
the notifications in the logs without a worker.
"""

import asyncio
import logging
from typing import Optional

from order_service.services.events.base import BaseEventPublisher, OutboundEvent
from order_service.services.notifications.base import BaseNotificationService

logger = logging.getLogger(__name__)


class MockEventPublisher(BaseEventPublisher):
    """
    In-memory publisher.

    Attributes:
        published: Every event accepted so far
        fail: When True ``publish`` raises, as a broker outage would
    """

    def __init__(self, notification_service: Optional[BaseNotificationService] = None):
        self.notification_service = notification_service
        self.published: list[OutboundEvent] = []
        self.fail = False
        self._tasks: set[asyncio.Task] = set()

    @property
    def provider_name(self) -> str:
        return "mock"

    async def publish(self, event: OutboundEvent) -> None:
        if self.fail:
            raise ConnectionError("Event broker unavailable (simulated)")

        self.published.append(event)
        logger.debug(f"Published {event.name} for {event.channel} #{event.recipient_id}")

        if self.notification_service is not None:
            task = asyncio.create_task(self._deliver(event))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _deliver(self, event: OutboundEvent) -> None:
        try:
            await self.notification_service.send(event.channel, event.recipient_id, event.message)
        except Exception as e:
            logger.warning(f"Background delivery of {event.name} failed: {e}")

    async def drain(self) -> None:
        """Wait for background deliveries still in flight."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
