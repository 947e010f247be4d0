"""Error taxonomy for the order engine.

Every error here is recoverable at the call site: the terminal shows the
message and lets the operator retry. ``PersistenceError`` is the only one
raised for infrastructure reasons; the refresh controller keeps its last
good snapshot when it sees one.
"""

from typing import Iterable, Optional


class OrderEngineError(Exception):
    """Base class for all order engine errors."""


class InvalidCartError(OrderEngineError):
    """Raised when a cart is empty, has bad quantities or unknown items."""

    def __init__(self, message: str, unknown_item_ids: Optional[Iterable[int]] = None):
        self.unknown_item_ids = sorted(unknown_item_ids or [])
        super().__init__(message)


class NotFoundError(OrderEngineError):
    """Raised when a mutation targets an order id that does not exist."""

    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class InvalidTransitionError(OrderEngineError):
    """Raised on an illegal status change or cancellation of a terminal order."""

    def __init__(self, source: str, target: str):
        self.source = source
        self.target = target
        super().__init__(f"Cannot move order from '{source}' to '{target}'")


class EmptyReasonError(OrderEngineError):
    """Raised when an order is cancelled without a reason."""

    def __init__(self):
        super().__init__("A cancellation reason is required")


class PersistenceError(OrderEngineError):
    """Raised when the backing store cannot be read or written."""


class ConcurrentModificationError(OrderEngineError):
    """Raised when a document changed between read and write."""

    def __init__(self, collection: str, doc_id: int, expected: int, current: int):
        self.collection = collection
        self.doc_id = doc_id
        self.expected = expected
        self.current = current
        super().__init__(
            f"Version conflict on {collection}/{doc_id}: expected {expected}, current {current}"
        )
