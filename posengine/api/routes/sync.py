"""Sync routes: refresh controller status and manual refresh."""

from fastapi import APIRouter, Request

from posengine.api.deps import ControllerDep
from posengine.core.rate_limit import limiter
from posengine.schemas.reports import SyncStatus

router = APIRouter()


@router.get("/status", response_model=SyncStatus)
@limiter.limit("120/minute")
async def get_sync_status(request: Request, controller: ControllerDep):
    """Snapshot age, generation and the last poll error, if any."""
    return controller.status()


@router.post("/refresh", response_model=SyncStatus)
@limiter.limit("30/minute")
async def trigger_refresh(request: Request, controller: ControllerDep):
    """Poll the store now instead of waiting for the next tick."""
    await controller.refresh()
    return controller.status()
