"""Menu item routes used by menu management and seed scripts."""

import logging
from typing import List

from fastapi import APIRouter, HTTPException, Request, status

from posengine.api.deps import CatalogDep
from posengine.core.rate_limit import limiter
from posengine.schemas.menu import MenuItem, MenuItemCreate, MenuItemUpdate

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=List[MenuItem])
@limiter.limit("60/minute")
async def list_menu_items(request: Request, catalog: CatalogDep):
    return await catalog.get_menu_items()


@router.post("/", response_model=MenuItem, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def create_menu_item(request: Request, payload: MenuItemCreate, catalog: CatalogDep):
    return await catalog.create_menu_item(payload)


@router.patch("/{item_id}", response_model=MenuItem)
@limiter.limit("30/minute")
async def update_menu_item(request: Request, item_id: int, payload: MenuItemUpdate, catalog: CatalogDep):
    """Edit a menu item. Existing orders keep the total they were created with."""
    item = await catalog.update_menu_item(item_id, payload)
    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Menu item not found")
    return item
