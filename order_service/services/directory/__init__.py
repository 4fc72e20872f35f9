"""
Directory Service Factory

Returns the Mock or HTTP directory based on ENV_MODE.
"""

import logging
from functools import lru_cache

from order_service.core.config import get_settings
from order_service.services.directory.base import BaseDirectoryService
from order_service.services.directory.mock import MockDirectoryService
from order_service.services.directory.http import HttpDirectoryService

logger = logging.getLogger(__name__)


@lru_cache()
def get_directory_service() -> BaseDirectoryService:
    """Get the configured directory service."""
    settings = get_settings()

    if settings.is_development:
        logger.info("Directory Service: Using MockDirectoryService (development mode)")
        return MockDirectoryService(failure_rate=settings.mock_failure_rate)
    else:
        logger.info(f"Directory Service: Using HttpDirectoryService ({settings.env_mode.value} mode)")
        return HttpDirectoryService()


def reset_directory_service() -> None:
    """Clear the cached service instance."""
    get_directory_service.cache_clear()


__all__ = [
    "get_directory_service",
    "reset_directory_service",
    "BaseDirectoryService",
    "MockDirectoryService",
    "HttpDirectoryService",
]
