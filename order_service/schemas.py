"""
Pydantic Schemas for Request/Response Validation

Request bodies of the order API, the enriched read views and the outbox
inspection payloads.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, field_validator

from order_service.core.state_machine import OrderStatus
from order_service.models import OrderEventStatus, OrderEventType


def _parse_status(v: Any) -> Any:
    if v is None:
        return v
    try:
        return OrderStatus.parse(v)
    except ValueError:
        valid = [s.value for s in OrderStatus]
        raise ValueError(f"Status must be one of: {valid}")


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class OrderCreate(BaseModel):
    """Request schema for placing a new order."""

    customer_id: PositiveInt = Field(..., examples=[1])
    restaurant_id: PositiveInt = Field(..., examples=[5])
    status: OrderStatus = Field(default=OrderStatus.PENDING, examples=["pending"])
    total_price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2, examples=[1200])
    items: List[PositiveInt] = Field(..., min_length=1, examples=[[10, 11]])
    address: Optional[str] = Field(None, max_length=255, examples=["12 Rue de la Paix"])

    @field_validator("status", mode="before")
    @classmethod
    def validate_status(cls, v: Any) -> Any:
        return _parse_status(v)

    @field_validator("address")
    @classmethod
    def blank_address_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


class OrderUpdate(BaseModel):
    """Request schema for a status transition / partial update."""

    status: Optional[OrderStatus] = Field(None, examples=["waiting_for_pickup"])
    total_price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    courier_id: Optional[PositiveInt] = Field(None, examples=[7])

    @field_validator("status", mode="before")
    @classmethod
    def validate_status(cls, v: Any) -> Any:
        return _parse_status(v)


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class OrderResponse(BaseModel):
    """A single order as stored."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_id: int
    restaurant_id: int
    status: OrderStatus
    total_price: float
    address: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None


class EnrichedOrderResponse(OrderResponse):
    """An order merged with the data owned by the sibling services."""
    progress: float = 0.0
    items: List[dict[str, Any]] = Field(default_factory=list)
    restaurant: Optional[dict[str, Any]] = None
    customer: Optional[dict[str, Any]] = None
    delivery: Optional[dict[str, Any]] = None


class OrderCreateResponse(BaseModel):
    """Response after successfully placing an order."""
    success: bool = True
    message: str
    order_id: int
    status: OrderStatus


class OrderUpdateResponse(BaseModel):
    """Response after a successful transition."""
    success: bool = True
    message: str
    order: OrderResponse


class OrderListResponse(BaseModel):
    """Response for listing multiple orders."""
    total: int
    orders: List[EnrichedOrderResponse]


class MessageResponse(BaseModel):
    """Plain acknowledgement."""
    success: bool = True
    message: str


class OrderEventResponse(BaseModel):
    """An outbox row."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    event_type: OrderEventType
    payload: dict[str, Any]
    status: OrderEventStatus
    attempts: int
    last_error: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None


class ReconcileResponse(BaseModel):
    """Outcome of one reconciliation run."""
    attempted: int
    succeeded: int
    failed: int
    abandoned: int


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    message: str
    details: Optional[Any] = None


class PartialFailureResponse(BaseModel):
    """Error response when the order changed but a side effect failed."""
    success: bool = False
    error: str
    message: str
    order_state_changed: bool = True
    order: dict[str, Any]
    event_id: Optional[int] = None
    downstream: dict[str, Any]


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    directory_service: str
    delivery_service: str
    notification_service: str
    timestamp: datetime
