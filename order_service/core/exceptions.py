"""
Order Service Error Taxonomy

Every error the orchestrator raises derives from ``OrderServiceError`` and
carries the HTTP status the API answers with. The FastAPI application turns
them into JSON responses in a single exception handler.

Hierarchy:
    OrderServiceError                  500
    ├── ValidationError                400
    │   └── InvalidTransitionError     400
    ├── NotFoundError                  404
    ├── ConflictError                  409
    ├── DownstreamError                502  (collaborator rejected the call)
    │   └── DownstreamUnavailableError 503  (no answer: timeout, refused, DNS)
    └── PartialFailureError            500  (local write done, side effect failed)
"""

from typing import Any, Optional


class OrderServiceError(Exception):
    """Base class for all order service errors."""

    status_code: int = 500
    error: str = "Internal Error"

    def __init__(self, message: str, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize for an API error response."""
        payload: dict[str, Any] = {
            "success": False,
            "error": self.error,
            "message": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(OrderServiceError):
    """Malformed or missing input. Raised before anything is written."""
    status_code = 400
    error = "Validation Error"


class InvalidTransitionError(ValidationError):
    """The requested status may not follow the current one."""
    error = "Invalid Transition"


class NotFoundError(OrderServiceError):
    """Referenced order, restaurant or delivery does not exist."""
    status_code = 404
    error = "Not Found"


class ConflictError(OrderServiceError):
    """A delivery already exists for the order."""
    status_code = 409
    error = "Conflict"


class DownstreamError(OrderServiceError):
    """A collaborator answered, but rejected the call."""
    status_code = 502
    error = "Downstream Error"

    def __init__(
        self,
        message: str,
        *,
        service: str,
        status: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)
        self.service = service
        self.status = status

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["service"] = self.service
        if self.status is not None:
            payload["downstream_status"] = self.status
        return payload


class DownstreamUnavailableError(DownstreamError):
    """A collaborator did not answer (timeout, refused connection, DNS failure)."""
    status_code = 503
    error = "Downstream Unavailable"


class PartialFailureError(OrderServiceError):
    """
    The order write committed but a required downstream side effect failed.

    The order state has already changed when this is raised. ``cause`` is
    the error of the failed downstream call and ``event_id`` the outbox row
    that records the pending side effect for reconciliation.
    """
    status_code = 500
    error = "Partial Failure"

    def __init__(
        self,
        message: str,
        *,
        order: dict[str, Any],
        cause: OrderServiceError,
        event_id: Optional[int] = None,
    ):
        super().__init__(message)
        self.order = order
        self.cause = cause
        self.event_id = event_id

    def to_dict(self) -> dict[str, Any]:
        downstream = {
            "error": self.cause.error,
            "message": self.cause.message,
        }
        if isinstance(self.cause, DownstreamError):
            downstream["service"] = self.cause.service

        return {
            "success": False,
            "error": self.error,
            "message": self.message,
            "order_state_changed": True,
            "order": self.order,
            "event_id": self.event_id,
            "downstream": downstream,
        }
