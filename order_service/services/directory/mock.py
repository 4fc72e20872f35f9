"""
Mock Directory Service

In-memory restaurants, items and users for development and tests.
No sibling service is contacted.

Behavior:
    - Serves the records given at construction (or a small demo catalog)
    - ``available = False`` makes every call fail as if the service were down
    - Optional random failure rate for exercising degraded read paths
"""

import copy
import logging
import random
from typing import Any, Optional, Sequence

from order_service.core.exceptions import DownstreamUnavailableError, NotFoundError
from order_service.services.directory.base import BaseDirectoryService

logger = logging.getLogger(__name__)

DEMO_RESTAURANTS = {
    5: {"id": 5, "user_id": 42, "name": "Chez Khalil", "address": "12 Rue de la Paix"},
}
DEMO_ITEMS = {
    10: {"id": 10, "restaurant_id": 5, "name": "Couscous Royal", "price": 700},
    11: {"id": 11, "restaurant_id": 5, "name": "Mint Tea", "price": 500},
}
DEMO_USERS = {
    1: {"id": 1, "name": "Amina", "role": "customer"},
    7: {"id": 7, "name": "Youssef", "role": "delivery"},
    42: {"id": 42, "name": "Khalil", "role": "restaurant"},
}


class MockDirectoryService(BaseDirectoryService):
    """
    Mock implementation of the directory.

    Attributes:
        restaurants: id → restaurant record
        items: id → item record
        users: id → user record
        available: When False every call raises DownstreamUnavailableError
        failure_rate: Probability of a simulated outage per call
        calls: Log of (method, argument) tuples, for assertions
    """

    def __init__(
        self,
        restaurants: Optional[dict[int, dict[str, Any]]] = None,
        items: Optional[dict[int, dict[str, Any]]] = None,
        users: Optional[dict[int, dict[str, Any]]] = None,
        failure_rate: float = 0.0,
    ):
        self.restaurants = restaurants if restaurants is not None else copy.deepcopy(DEMO_RESTAURANTS)
        self.items = items if items is not None else copy.deepcopy(DEMO_ITEMS)
        self.users = users if users is not None else copy.deepcopy(DEMO_USERS)
        self.failure_rate = failure_rate
        self.available = True
        self.calls: list[tuple[str, Any]] = []

        logger.info(
            f"MockDirectoryService initialized "
            f"({len(self.restaurants)} restaurants, {len(self.items)} items, "
            f"failure_rate={failure_rate:.0%})"
        )

    @property
    def provider_name(self) -> str:
        return "mock"

    def _check_available(self) -> None:
        if not self.available or random.random() < self.failure_rate:
            raise DownstreamUnavailableError(
                "Directory unavailable (simulated)",
                service="directory",
            )

    async def get_restaurant(self, restaurant_id: int) -> dict[str, Any]:
        self.calls.append(("get_restaurant", restaurant_id))
        self._check_available()

        restaurant = self.restaurants.get(restaurant_id)
        if restaurant is None:
            raise NotFoundError(f"Restaurant #{restaurant_id} not found")
        return dict(restaurant)

    async def get_items(self, item_ids: Sequence[int]) -> list[dict[str, Any]]:
        self.calls.append(("get_items", tuple(item_ids)))
        self._check_available()

        return [dict(self.items[i]) for i in dict.fromkeys(item_ids) if i in self.items]

    async def get_user(self, user_id: int) -> dict[str, Any]:
        self.calls.append(("get_user", user_id))
        self._check_available()

        user = self.users.get(user_id)
        if user is None:
            raise NotFoundError(f"User #{user_id} not found")
        return dict(user)

    async def health_check(self) -> bool:
        return self.available
