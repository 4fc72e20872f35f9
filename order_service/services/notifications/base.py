"""
Notification Service Abstract Base Class

Defines the interface to the Notification Dispatcher, which pushes a
message to a connected restaurant or user. Delivery is best-effort: an
unreachable recipient is reported in the result, not raised.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class NotificationResult:
    """Result from sending a notification."""
    success: bool
    channel: str
    recipient_id: int
    error_message: Optional[str] = None
    provider: str = "unknown"


class BaseNotificationService(ABC):
    """Abstract base class for notification services."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def notify_restaurant(
        self,
        restaurant_id: int,
        message: str,
    ) -> NotificationResult:
        """Push a message to a restaurant channel."""
        pass

    @abstractmethod
    async def notify_user(
        self,
        user_id: int,
        message: str,
    ) -> NotificationResult:
        """Push a message to a user channel."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check service connectivity."""
        pass

    async def close(self) -> None:
        """Release network resources."""

    async def send(self, channel: str, recipient_id: int, message: str) -> NotificationResult:
        """Dispatch on the channel name ("restaurant" or "user")."""
        if channel == "restaurant":
            return await self.notify_restaurant(recipient_id, message)
        if channel == "user":
            return await self.notify_user(recipient_id, message)
        raise ValueError(f"Unknown notification channel: {channel}")
