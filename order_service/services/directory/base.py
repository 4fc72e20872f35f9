"""
Directory Service Abstract Base Class

Defines the read-only interface to the restaurant, item and user facts
owned by the sibling services. Both MockDirectoryService and
HttpDirectoryService implement it.

Use Cases:
    - Resolving the owner of a restaurant before notifying it
    - Enriching order views with items, restaurant and customer
"""

from abc import ABC, abstractmethod
from typing import Any, Sequence


class BaseDirectoryService(ABC):
    """
    Abstract base class for directory lookups.

    Every method raises ``NotFoundError`` for unknown ids and a
    ``DownstreamError`` subclass when the directory cannot answer.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""

    @abstractmethod
    async def get_restaurant(self, restaurant_id: int) -> dict[str, Any]:
        """
        Fetch one restaurant.

        The returned mapping carries at least ``id`` and ``user_id`` (owner).
        """

    @abstractmethod
    async def get_items(self, item_ids: Sequence[int]) -> list[dict[str, Any]]:
        """
        Fetch several catalog items in one call.

        Unknown ids are simply absent from the result.
        """

    @abstractmethod
    async def get_user(self, user_id: int) -> dict[str, Any]:
        """Fetch one user (customer, owner or courier)."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Check service connectivity."""

    async def close(self) -> None:
        """Release network resources."""
