"""Order store: the single source of truth for orders.

Every creation and mutation goes through here so the lifecycle invariants
hold no matter which terminal issues the call. The store keeps no order
state of its own; each operation reads the latest records from the
backing document store, validates locally and writes back with an
expected version. When another terminal wins the race the write is
rejected, the latest record is re-read and the transition is validated
again before retrying.
"""

import inspect
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from posengine.core.clock import utcnow
from posengine.core.config import settings
from posengine.core.exceptions import (
    ConcurrentModificationError,
    EmptyReasonError,
    InvalidCartError,
    InvalidTransitionError,
    NotFoundError,
)
from posengine.schemas.order import (
    QUEUE_STATUSES,
    REALIZED_STATUSES,
    Order,
    OrderFilter,
    OrderStatus,
    OrderType,
    StatusCounts,
)
from posengine.services import lifecycle
from posengine.services.catalog import Catalog
from posengine.services.document_store import ORDERS, DocumentStore
from posengine.services.snapshot import StoreSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreEvent:
    """Change notification published after a successful write."""

    kind: str  # created | status_changed | cancelled
    order: Order


Listener = Callable[[StoreEvent], Any]


class OrderStore:
    """Creates, advances and cancels orders against a DocumentStore."""

    def __init__(
        self,
        store: DocumentStore,
        catalog: Catalog,
        retry_limit: Optional[int] = None,
        clock: Callable = utcnow,
    ):
        self.store = store
        self.catalog = catalog
        self.retry_limit = settings.update_retry_limit if retry_limit is None else retry_limit
        self._clock = clock
        self._listeners: List[Listener] = []

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> None:
        """Register a sync or async callable for store-changed events."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def _notify(self, kind: str, order: Order) -> None:
        event = StoreEvent(kind=kind, order=order)
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                # The write already committed; a broken consumer must not
                # turn it into a failure for the terminal.
                logger.exception(f"Store listener failed on {kind} for order {order.id}")

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_order(
        self,
        cart: Mapping[int, int],
        order_type: OrderType,
        cashier_name: str,
        customer_name: Optional[str] = None,
        table_number: Optional[int] = None,
    ) -> Order:
        """Price a cart against the current catalog and persist it as pending."""
        items = _normalize_cart(cart)
        catalog = await self.catalog.snapshot()
        unknown = catalog.unknown_ids(items)
        if unknown:
            raise InvalidCartError(
                f"Cart references unknown menu items: {sorted(unknown)}", unknown_item_ids=unknown
            )

        total = sum(
            (catalog.price_of(item_id) * quantity for item_id, quantity in items.items()),
            Decimal("0"),
        )
        data = {
            "items": {str(item_id): quantity for item_id, quantity in items.items()},
            "order_type": OrderType(order_type).value,
            "customer_name": customer_name,
            "table_number": table_number,
            "total": str(total),
            "cashier_name": cashier_name,
            "status": lifecycle.INITIAL_STATUS.value,
            "created_at": self._clock().isoformat(),
            "updated_at": None,
            "cancellation_reason": None,
            "cancelled_by": None,
            "cancelled_at": None,
        }
        doc = await self.store.create(ORDERS, data)
        order = Order.model_validate(doc)
        logger.info(
            f"Order {order.id} created by {cashier_name}: "
            f"{order.item_count} items, total {settings.currency_symbol}{order.total}"
        )
        await self._notify("created", order)
        return order

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def update_status(self, order_id: int, next_status: OrderStatus) -> Order:
        """Move an order one step along the forward chain.

        Cancellation needs a reason and goes through ``cancel_order``.
        """
        next_status = OrderStatus(next_status)

        def apply(order: Order) -> Order:
            lifecycle.validate_transition(order.status, next_status)
            if next_status is OrderStatus.CANCELLED:
                raise EmptyReasonError()
            return order.model_copy(update={"status": next_status, "updated_at": self._clock()})

        order = await self._mutate(order_id, apply)
        logger.info(f"Order {order_id} moved to {next_status.value}")
        await self._notify("status_changed", order)
        return order

    async def advance_order(self, order_id: int) -> Order:
        """Apply whatever forward step follows the order's current status."""

        def apply(order: Order) -> Order:
            target = lifecycle.next_status(order.status)
            if target is None:
                raise InvalidTransitionError(order.status.value, "next")
            return order.model_copy(update={"status": target, "updated_at": self._clock()})

        order = await self._mutate(order_id, apply)
        logger.info(f"Order {order_id} advanced to {order.status.value}")
        await self._notify("status_changed", order)
        return order

    async def cancel_order(self, order_id: int, reason: str, cancelled_by: str) -> Order:
        """Cancel a non-terminal order, recording who cancelled it and why."""
        reason = (reason or "").strip()
        if not reason:
            raise EmptyReasonError()

        def apply(order: Order) -> Order:
            lifecycle.validate_cancellation(order.status)
            now = self._clock()
            return order.model_copy(update={
                "status": OrderStatus.CANCELLED,
                "cancellation_reason": reason,
                "cancelled_by": cancelled_by,
                "cancelled_at": now,
                "updated_at": now,
            })

        order = await self._mutate(order_id, apply)
        logger.info(f"Order {order_id} cancelled by {cancelled_by}: {reason}")
        await self._notify("cancelled", order)
        return order

    async def _mutate(self, order_id: int, apply: Callable[[Order], Order]) -> Order:
        """Read-validate-write with re-validation after a lost race."""
        attempt = 0
        while True:
            current = await self.get_order(order_id)
            updated = apply(current)
            try:
                doc = await self.store.update(
                    ORDERS, order_id, _to_document(updated), expected_version=current.version
                )
            except ConcurrentModificationError as e:
                attempt += 1
                if attempt > self.retry_limit:
                    logger.warning(f"Order {order_id} still conflicting after {attempt} attempts")
                    raise
                logger.info(f"Order {order_id} changed concurrently ({e}); re-validating")
                continue
            if doc is None:
                raise NotFoundError(order_id)
            return Order.model_validate(doc)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _load_all(self) -> List[Order]:
        docs = await self.store.list_all(ORDERS)
        return [Order.model_validate(doc) for doc in docs]

    async def get_order(self, order_id: int) -> Order:
        for order in await self._load_all():
            if order.id == order_id:
                return order
        raise NotFoundError(order_id)

    async def list_orders(self, order_filter: Optional[OrderFilter] = None) -> List[Order]:
        """Return a fresh list of orders matching *order_filter*.

        Ordering is unspecified; queue views sort ascending and history
        views descending by ``created_at``.
        """
        orders = await self._load_all()
        if order_filter is None:
            return orders
        return [order for order in orders if order_filter.matches(order)]

    async def count_by_status(self, statuses: Iterable[OrderStatus]) -> int:
        wanted = {OrderStatus(status) for status in statuses}
        return sum(1 for order in await self._load_all() if order.status in wanted)

    async def status_counts(self) -> StatusCounts:
        orders = await self._load_all()
        counts: Dict[OrderStatus, int] = {status: 0 for status in OrderStatus}
        for order in orders:
            counts[order.status] += 1
        return StatusCounts(
            counts=counts,
            active=sum(counts[s] for s in (OrderStatus.PENDING, OrderStatus.PREPARING, OrderStatus.READY)),
            realized=sum(counts[s] for s in REALIZED_STATUSES),
        )

    async def queue_orders(self) -> List[Order]:
        """Orders still on the shared queue, oldest first."""
        orders = await self.list_orders(OrderFilter(statuses=QUEUE_STATUSES))
        return sorted(orders, key=lambda o: (o.created_at, o.id))

    async def order_history(self, limit: Optional[int] = None) -> List[Order]:
        """All orders, newest first."""
        orders = sorted(await self._load_all(), key=lambda o: (o.created_at, o.id), reverse=True)
        return orders if limit is None else orders[:limit]

    async def snapshot(self, generation: int = 0) -> StoreSnapshot:
        """Read orders and catalog together into an immutable snapshot."""
        orders = await self._load_all()
        catalog = await self.catalog.snapshot()
        return StoreSnapshot(
            orders=tuple(orders),
            catalog=catalog,
            taken_at=self._clock(),
            generation=generation,
        )


def _normalize_cart(cart: Mapping[int, int]) -> Dict[int, int]:
    if not cart:
        raise InvalidCartError("Cart is empty")
    items: Dict[int, int] = {}
    for raw_id, raw_qty in cart.items():
        try:
            item_id = int(raw_id)
        except (TypeError, ValueError):
            raise InvalidCartError(f"Invalid menu item id: {raw_id!r}")
        if isinstance(raw_qty, bool) or not isinstance(raw_qty, int) or raw_qty <= 0:
            raise InvalidCartError(f"Quantity for item {item_id} must be a positive integer")
        items[item_id] = items.get(item_id, 0) + raw_qty
    return items


def _to_document(order: Order) -> Dict[str, Any]:
    data = order.model_dump(mode="json", exclude={"id", "version"})
    data["items"] = {str(k): v for k, v in order.items.items()}
    return data
