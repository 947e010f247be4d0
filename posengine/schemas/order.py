"""Order schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Annotated, Dict, FrozenSet, List, Mapping, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, PlainSerializer, model_validator

from posengine.core.clock import as_utc


class OrderStatus(str, Enum):
    """Lifecycle status of an order."""

    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    SERVED = "served"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OrderType(str, Enum):
    """How the order is fulfilled."""

    DINE_IN = "dine-in"
    TAKE_OUT = "take-out"


# Statuses that count as an economically final sale.
REALIZED_STATUSES: FrozenSet[OrderStatus] = frozenset({OrderStatus.SERVED, OrderStatus.COMPLETED})

# Statuses shown on the shared order queue.
QUEUE_STATUSES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.PENDING,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.SERVED,
})


# item id -> quantity. Read-only once validated; dumps back to a plain dict.
OrderItems = Annotated[
    Mapping[int, int],
    AfterValidator(lambda items: MappingProxyType(dict(items))),
    PlainSerializer(dict, return_type=Dict[int, int]),
]


class Order(BaseModel):
    """A single customer transaction.

    Instances are immutable; the order store produces a new copy for every
    mutation so snapshots handed to dashboards never change underneath them.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    items: OrderItems
    order_type: OrderType
    customer_name: Optional[str] = None
    table_number: Optional[int] = None
    total: Decimal
    cashier_name: str
    status: OrderStatus = OrderStatus.PENDING
    created_at: datetime
    updated_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    version: int = 1

    @property
    def is_realized(self) -> bool:
        return self.status in REALIZED_STATUSES

    @property
    def item_count(self) -> int:
        return sum(self.items.values())


class OrderCreate(BaseModel):
    """Order creation schema submitted by a terminal."""

    items: Dict[int, int]
    order_type: OrderType = OrderType.DINE_IN
    cashier_name: str = Field(min_length=1, max_length=100)
    customer_name: Optional[str] = Field(default=None, max_length=100)
    table_number: Optional[int] = Field(default=None, ge=0)


class OrderStatusUpdate(BaseModel):
    """Request to move an order to a new status."""

    status: OrderStatus


class OrderCancel(BaseModel):
    """Cancellation request.

    Blank reasons are accepted here so the order store can reject them
    with its own error.
    """

    reason: str = ""
    cancelled_by: str = Field(min_length=1, max_length=100)


class OrderFilter(BaseModel):
    """Client-side filter applied to an order snapshot."""

    statuses: Optional[FrozenSet[OrderStatus]] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @model_validator(mode="after")
    def check_range(self):
        if self.start is not None and self.end is not None and as_utc(self.end) < as_utc(self.start):
            raise ValueError("end must not be before start")
        return self

    def matches(self, order: Order) -> bool:
        if self.statuses is not None and order.status not in self.statuses:
            return False
        created_at = as_utc(order.created_at)
        if self.start is not None and created_at < as_utc(self.start):
            return False
        if self.end is not None and created_at >= as_utc(self.end):
            return False
        return True


class StatusCounts(BaseModel):
    """Queue badge counters."""

    counts: Dict[OrderStatus, int]
    active: int
    realized: int


class OrderList(BaseModel):
    """List envelope for order endpoints."""

    items: List[Order]
    total: int
