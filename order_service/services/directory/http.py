"""
HTTP Directory Service

Production implementation talking to the restaurant service (restaurants
and items) and the user service over HTTP.

Endpoints:
    GET /restaurants/{id}
    GET /items?ids=1,2,3
    GET /users/{id}
"""

import logging
from typing import Any, Optional, Sequence

import httpx

from order_service.core.config import get_settings
from order_service.services.directory.base import BaseDirectoryService
from order_service.services.http import ServiceClient, unwrap

logger = logging.getLogger(__name__)


class HttpDirectoryService(BaseDirectoryService):
    """Directory lookups over HTTP."""

    def __init__(
        self,
        directory_url: Optional[str] = None,
        user_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        timeout = timeout or settings.http_timeout_seconds

        self._restaurants = ServiceClient(
            "directory",
            directory_url or settings.directory_service_url,
            timeout=timeout,
            transport=transport,
        )
        self._users = ServiceClient(
            "users",
            user_url or settings.user_service_url,
            timeout=timeout,
            transport=transport,
        )

        logger.info(f"HttpDirectoryService initialized ({self._restaurants.base_url})")

    @property
    def provider_name(self) -> str:
        return "http"

    async def get_restaurant(self, restaurant_id: int) -> dict[str, Any]:
        body = await self._restaurants.get(f"/restaurants/{restaurant_id}")
        return unwrap(body, "restaurant")

    async def get_items(self, item_ids: Sequence[int]) -> list[dict[str, Any]]:
        if not item_ids:
            return []
        ids = ",".join(str(i) for i in dict.fromkeys(item_ids))
        body = await self._restaurants.get("/items", params={"ids": ids})
        return unwrap(body, "items") or []

    async def get_user(self, user_id: int) -> dict[str, Any]:
        body = await self._users.get(f"/users/{user_id}")
        return unwrap(body, "user")

    async def health_check(self) -> bool:
        return await self._restaurants.ping()

    async def close(self) -> None:
        await self._restaurants.aclose()
        await self._users.aclose()
