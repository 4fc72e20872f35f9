"""
Event Publisher Factory

Returns the in-memory or Celery publisher based on ENV_MODE.
"""

import logging
from functools import lru_cache

from order_service.core.config import get_settings
from order_service.services.events.base import BaseEventPublisher, OutboundEvent
from order_service.services.events.mock import MockEventPublisher
from order_service.services.events.celery_publisher import CeleryEventPublisher
from order_service.services.notifications import get_notification_service

logger = logging.getLogger(__name__)


@lru_cache()
def get_event_publisher() -> BaseEventPublisher:
    """Get the configured event publisher."""
    settings = get_settings()

    if settings.is_development:
        logger.info("Event Publisher: Using MockEventPublisher (development mode)")
        return MockEventPublisher(notification_service=get_notification_service())
    else:
        logger.info(f"Event Publisher: Using CeleryEventPublisher ({settings.env_mode.value} mode)")
        return CeleryEventPublisher()


def reset_event_publisher() -> None:
    """Clear the cached publisher instance."""
    get_event_publisher.cache_clear()


__all__ = [
    "get_event_publisher",
    "reset_event_publisher",
    "BaseEventPublisher",
    "OutboundEvent",
    "MockEventPublisher",
    "CeleryEventPublisher",
]
