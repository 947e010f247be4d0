"""Order routes: creation, queue views and lifecycle actions."""

import logging
from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, HTTPException, Query, Request, status
from pydantic import ValidationError

from posengine.api.deps import OrderStoreDep
from posengine.core.rate_limit import limiter
from posengine.schemas.order import (
    Order,
    OrderCancel,
    OrderCreate,
    OrderFilter,
    OrderList,
    OrderStatus,
    OrderStatusUpdate,
    StatusCounts,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/", response_model=Order, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def create_order(request: Request, payload: OrderCreate, order_store: OrderStoreDep):
    """Price the cart against the current menu and open a pending order."""
    return await order_store.create_order(
        payload.items,
        payload.order_type,
        payload.cashier_name,
        customer_name=payload.customer_name,
        table_number=payload.table_number,
    )


@router.get("/", response_model=OrderList)
@limiter.limit("60/minute")
async def list_orders(
    request: Request,
    order_store: OrderStoreDep,
    status_filter: Optional[List[OrderStatus]] = Query(None, alias="status"),
    start: Optional[datetime] = Query(None, description="Created at or after"),
    end: Optional[datetime] = Query(None, description="Created before"),
    sort: Literal["asc", "desc"] = Query("desc"),
    limit: Optional[int] = Query(None, ge=1, le=1000),
):
    """List orders, newest first unless ``sort=asc``."""
    try:
        order_filter = OrderFilter(
            statuses=frozenset(status_filter) if status_filter else None,
            start=start,
            end=end,
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.errors()[0]["msg"])

    orders = await order_store.list_orders(order_filter)
    orders.sort(key=lambda o: (o.created_at, o.id), reverse=sort == "desc")
    total = len(orders)
    if limit is not None:
        orders = orders[:limit]
    return OrderList(items=orders, total=total)


@router.get("/queue", response_model=List[Order])
@limiter.limit("120/minute")
async def get_queue(request: Request, order_store: OrderStoreDep):
    """Orders still in the shared queue, oldest first."""
    return await order_store.queue_orders()


@router.get("/counts", response_model=StatusCounts)
@limiter.limit("120/minute")
async def get_status_counts(request: Request, order_store: OrderStoreDep):
    """Per-status counters for the queue badges."""
    return await order_store.status_counts()


@router.get("/{order_id}", response_model=Order)
@limiter.limit("120/minute")
async def get_order(request: Request, order_id: int, order_store: OrderStoreDep):
    return await order_store.get_order(order_id)


@router.post("/{order_id}/status", response_model=Order)
@limiter.limit("60/minute")
async def update_order_status(
    request: Request,
    order_id: int,
    payload: OrderStatusUpdate,
    order_store: OrderStoreDep,
):
    """Move an order one step forward. Use ``/cancel`` to cancel."""
    return await order_store.update_status(order_id, payload.status)


@router.post("/{order_id}/advance", response_model=Order)
@limiter.limit("60/minute")
async def advance_order(request: Request, order_id: int, order_store: OrderStoreDep):
    return await order_store.advance_order(order_id)


@router.post("/{order_id}/cancel", response_model=Order)
@limiter.limit("30/minute")
async def cancel_order(
    request: Request,
    order_id: int,
    payload: OrderCancel,
    order_store: OrderStoreDep,
):
    """Cancel an order that has not completed yet. A reason is required."""
    return await order_store.cancel_order(order_id, payload.reason, payload.cancelled_by)
