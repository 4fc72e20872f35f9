"""
Delivery Ledger Factory

Returns the Mock or HTTP Ledger client based on ENV_MODE.
"""

import logging
from functools import lru_cache

from order_service.core.config import get_settings
from order_service.services.ledger.base import BaseLedgerService, Delivery, DeliveryStatus
from order_service.services.ledger.mock import MockLedgerService
from order_service.services.ledger.http import HttpLedgerService

logger = logging.getLogger(__name__)


@lru_cache()
def get_ledger_service() -> BaseLedgerService:
    """Get the configured Ledger client."""
    settings = get_settings()

    if settings.is_development:
        logger.info("Ledger Service: Using MockLedgerService (development mode)")
        return MockLedgerService(failure_rate=settings.mock_failure_rate)
    else:
        logger.info(f"Ledger Service: Using HttpLedgerService ({settings.env_mode.value} mode)")
        return HttpLedgerService()


def reset_ledger_service() -> None:
    """Clear the cached service instance."""
    get_ledger_service.cache_clear()


__all__ = [
    "get_ledger_service",
    "reset_ledger_service",
    "BaseLedgerService",
    "Delivery",
    "DeliveryStatus",
    "MockLedgerService",
    "HttpLedgerService",
]
