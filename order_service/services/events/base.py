"""
Outbound Event Publisher

The orchestrator never calls the Notification Dispatcher on a request
path. It publishes an ``OutboundEvent`` and returns; delivery happens
elsewhere (a Celery worker in production, a background task in
development). Publishing is best-effort: callers log and swallow errors.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class OutboundEvent:
    """
    A notification to deliver.

    Attributes:
        name: Event name ("order_placed", "order_status_changed")
        channel: "restaurant" or "user"
        recipient_id: Restaurant id or user id
        message: Text pushed to the recipient
        data: Extra context kept for logs
    """
    name: str
    channel: str
    recipient_id: int
    message: str
    data: dict[str, Any] = field(default_factory=dict)


class BaseEventPublisher(ABC):
    """Abstract base class for event publishers."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""

    @abstractmethod
    async def publish(self, event: OutboundEvent) -> None:
        """Hand the event over for asynchronous delivery."""
