"""
Order State Machine

Defines allowed states and valid transitions for pending (direct) orders.
A pending order leaves the pending state exactly once.
"""

from enum import Enum
from typing import Final

import structlog

from stockroom.shared.exceptions import InvalidStateTransitionError

log = structlog.get_logger()


class OrderStatus(str, Enum):
    """
    Pending order status enum.

    States are mutually exclusive. Every state except PENDING is terminal.
    """

    PENDING = "pending"
    """Payment confirmed, goods not yet delivered."""

    CONFIRMED = "confirmed"
    """Stock claimed and finalized order written."""

    FAILED = "failed"
    """Not enough unsold stock at fulfillment time."""

    CANCELLED = "cancelled"
    """Order went stale before an operator fulfilled it."""

    @property
    def is_terminal(self) -> bool:
        """Check if this is a terminal state (no outgoing transitions)."""
        return self in TERMINAL_STATES

    @classmethod
    def from_string(cls, value: str) -> "OrderStatus":
        """Convert string to OrderStatus enum."""
        try:
            return cls(value.lower())
        except ValueError as e:
            raise ValueError(
                f"Invalid order status: '{value}'. "
                f"Valid values are: {[s.value for s in cls]}"
            ) from e


TERMINAL_STATES: Final[frozenset[OrderStatus]] = frozenset({
    OrderStatus.CONFIRMED,
    OrderStatus.FAILED,
    OrderStatus.CANCELLED,
})

VALID_TRANSITIONS: Final[dict[OrderStatus, frozenset[OrderStatus]]] = {
    OrderStatus.PENDING: frozenset({
        OrderStatus.CONFIRMED,
        OrderStatus.FAILED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.CONFIRMED: frozenset(),  # Terminal
    OrderStatus.FAILED: frozenset(),     # Terminal
    OrderStatus.CANCELLED: frozenset(),  # Terminal
}


def validate_transition(
    current_status: OrderStatus | str,
    new_status: OrderStatus | str,
    *,
    raise_on_invalid: bool = True,
) -> bool:
    """
    Validate that a state transition is allowed.

    Args:
        current_status: Current order status
        new_status: Desired next status
        raise_on_invalid: If True, raise exception on invalid transition

    Returns:
        True if transition is valid

    Raises:
        InvalidStateTransitionError: If transition is invalid and raise_on_invalid=True
    """
    if isinstance(current_status, str):
        current_status = OrderStatus.from_string(current_status)
    if isinstance(new_status, str):
        new_status = OrderStatus.from_string(new_status)

    allowed = VALID_TRANSITIONS.get(current_status, frozenset())
    is_valid = new_status in allowed

    if not is_valid and raise_on_invalid:
        log.warning(
            "invalid_state_transition",
            current_status=current_status.value,
            new_status=new_status.value,
            allowed_transitions=[s.value for s in allowed],
        )
        raise InvalidStateTransitionError(
            current_status=current_status.value,
            new_status=new_status.value,
            allowed_transitions=sorted(s.value for s in allowed),
        )

    return is_valid
