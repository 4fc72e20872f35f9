"""
Order Status State Machine

Closed set of order states, the transition table and the progress
percentage shown by read views.

Sequence:
    pending → confirmed → waiting_for_pickup → product_pickedup →
    confirmed_by_delivery → confirmed_by_client → completed

``cancelled`` is reachable from any non-terminal state. ``completed`` and
``cancelled`` are terminal.
"""

import enum
from typing import Optional, Union

from order_service.core.exceptions import InvalidTransitionError


class OrderStatus(str, enum.Enum):
    """Order status workflow."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    WAITING_FOR_PICKUP = "waiting_for_pickup"
    PRODUCT_PICKEDUP = "product_pickedup"
    CONFIRMED_BY_DELIVERY = "confirmed_by_delivery"
    CONFIRMED_BY_CLIENT = "confirmed_by_client"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, value: Union[str, "OrderStatus"]) -> "OrderStatus":
        """
        Build a status from user input.

        Accepts the canonical values as well as the space separated
        spellings used by older clients ("waiting for pickup").

        Raises:
            ValueError: If the value is not a known status
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Status must be a string, got {type(value).__name__}")
        normalized = "_".join(value.strip().lower().split())
        return cls(normalized)

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


class TransitionPolicy(str, enum.Enum):
    """
    How strictly status changes are checked against the current status.

    Attributes:
        PERMISSIVE: Any status at any time, except out of a terminal state
        FORWARD_ONLY: Any later stage or cancelled; stages may be skipped
        STRICT: Only the immediate next stage or cancelled
    """
    PERMISSIVE = "permissive"
    FORWARD_ONLY = "forward_only"
    STRICT = "strict"


ORDER_SEQUENCE: tuple[OrderStatus, ...] = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.WAITING_FOR_PICKUP,
    OrderStatus.PRODUCT_PICKEDUP,
    OrderStatus.CONFIRMED_BY_DELIVERY,
    OrderStatus.CONFIRMED_BY_CLIENT,
    OrderStatus.COMPLETED,
)

TERMINAL_STATES: frozenset[OrderStatus] = frozenset({
    OrderStatus.COMPLETED,
    OrderStatus.CANCELLED,
})

# Statuses from which a delivery may exist on the Ledger
DELIVERY_STATES: frozenset[OrderStatus] = frozenset(
    ORDER_SEQUENCE[ORDER_SEQUENCE.index(OrderStatus.WAITING_FOR_PICKUP):]
) | {OrderStatus.CANCELLED}


def allowed_transitions(
    current: OrderStatus,
    policy: TransitionPolicy = TransitionPolicy.FORWARD_ONLY,
) -> frozenset[OrderStatus]:
    """
    Return the statuses that may follow ``current`` under ``policy``.

    The current status itself is not included; re-writing it is always
    accepted by ``validate_transition``.
    """
    if current in TERMINAL_STATES:
        return frozenset()

    if policy == TransitionPolicy.PERMISSIVE:
        return frozenset(s for s in OrderStatus if s != current)

    index = ORDER_SEQUENCE.index(current)
    if policy == TransitionPolicy.STRICT:
        following = ORDER_SEQUENCE[index + 1:index + 2]
    else:
        following = ORDER_SEQUENCE[index + 1:]

    return frozenset(following) | {OrderStatus.CANCELLED}


def validate_transition(
    current: OrderStatus,
    new: OrderStatus,
    policy: TransitionPolicy = TransitionPolicy.FORWARD_ONLY,
) -> None:
    """
    Check a status change.

    Raises:
        InvalidTransitionError: If ``new`` may not follow ``current``
    """
    if new == current:
        return

    allowed = allowed_transitions(current, policy)
    if new not in allowed:
        if current in TERMINAL_STATES:
            reason = f"order is already {current.value}"
        else:
            reason = f"allowed next states: {sorted(s.value for s in allowed)}"
        raise InvalidTransitionError(
            f"Cannot move order from {current.value} to {new.value} ({reason})",
            details={
                "current_status": current.value,
                "requested_status": new.value,
                "policy": policy.value,
            },
        )


def progress(status: Optional[Union[str, OrderStatus]]) -> float:
    """
    Progress percentage of an order, 0 to 100.

    ``(index + 1) / len(ORDER_SEQUENCE)`` for statuses in the sequence,
    0 for ``cancelled`` and for anything unrecognised.
    """
    try:
        status = OrderStatus.parse(status)
    except ValueError:
        return 0.0

    if status not in ORDER_SEQUENCE:
        return 0.0

    return round((ORDER_SEQUENCE.index(status) + 1) / len(ORDER_SEQUENCE) * 100, 2)
