"""Order lifecycle state machine.

Pure decision logic: no I/O, no clock. Orders move one step at a time
along the forward chain so the kitchen queue never sees an order skip
preparation; cancellation is allowed at any point before completion.
"""

from typing import Dict, FrozenSet, Optional

from posengine.core.exceptions import InvalidTransitionError
from posengine.schemas.order import OrderStatus

INITIAL_STATUS = OrderStatus.PENDING

FORWARD_TRANSITIONS: Dict[OrderStatus, OrderStatus] = {
    OrderStatus.PENDING: OrderStatus.PREPARING,
    OrderStatus.PREPARING: OrderStatus.READY,
    OrderStatus.READY: OrderStatus.SERVED,
    OrderStatus.SERVED: OrderStatus.COMPLETED,
}

CANCELLABLE_STATUSES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.PENDING,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.SERVED,
})

TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.COMPLETED,
    OrderStatus.CANCELLED,
})

# Label of the queue button that performs each forward step.
ADVANCE_LABELS: Dict[OrderStatus, str] = {
    OrderStatus.PENDING: "Start Preparing",
    OrderStatus.PREPARING: "Mark Ready",
    OrderStatus.READY: "Mark Served",
    OrderStatus.SERVED: "Complete",
}


def next_status(current: OrderStatus) -> Optional[OrderStatus]:
    """Status the advance action produces, or None from a terminal state."""
    return FORWARD_TRANSITIONS.get(OrderStatus(current))


def is_terminal(status: OrderStatus) -> bool:
    return OrderStatus(status) in TERMINAL_STATUSES


def can_cancel(status: OrderStatus) -> bool:
    return OrderStatus(status) in CANCELLABLE_STATUSES


def validate_cancellation(current: OrderStatus) -> None:
    """Raise InvalidTransitionError unless *current* may be cancelled."""
    current = OrderStatus(current)
    if current not in CANCELLABLE_STATUSES:
        raise InvalidTransitionError(current.value, OrderStatus.CANCELLED.value)


def validate_transition(current: OrderStatus, target: OrderStatus) -> None:
    """Raise InvalidTransitionError unless current -> target is legal.

    A target of ``cancelled`` is checked against the cancellation rule;
    everything else must be the single forward step from *current*.
    """
    current = OrderStatus(current)
    target = OrderStatus(target)
    if target is OrderStatus.CANCELLED:
        validate_cancellation(current)
        return
    if FORWARD_TRANSITIONS.get(current) is not target:
        raise InvalidTransitionError(current.value, target.value)


def is_valid_transition(current: OrderStatus, target: OrderStatus) -> bool:
    try:
        validate_transition(current, target)
    except InvalidTransitionError:
        return False
    return True
