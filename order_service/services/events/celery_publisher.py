"""
Celery Event Publisher

Queues each event on the Redis broker; the ``deliver_notification`` task
performs the HTTP call to the Notification Dispatcher with retries.
"""

import logging

from order_service.services.events.base import BaseEventPublisher, OutboundEvent

logger = logging.getLogger(__name__)


class CeleryEventPublisher(BaseEventPublisher):
    """Publisher backed by the Celery worker."""

    @property
    def provider_name(self) -> str:
        return "celery"

    async def publish(self, event: OutboundEvent) -> None:
        # Imported here: the task module builds services that import this package
        from order_service.tasks import deliver_notification

        result = deliver_notification.delay(event.channel, event.recipient_id, event.message)
        logger.info(f"Queued {event.name} for {event.channel} #{event.recipient_id} (task {result.id})")
