"""API routes."""

from fastapi import APIRouter

from posengine.api.routes import menu, orders, reports, sync

api_router = APIRouter()

api_router.include_router(orders.router, prefix="/orders", tags=["orders"])
api_router.include_router(reports.router, prefix="/reports", tags=["reports"])
api_router.include_router(sync.router, prefix="/sync", tags=["sync"])
api_router.include_router(menu.router, prefix="/menu-items", tags=["menu"])
