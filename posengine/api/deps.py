"""Request dependencies.

Services live on ``app.state`` for the lifetime of the application; routes
receive them through the annotated aliases below.
"""

from typing import Annotated

from fastapi import Depends, Request

from posengine.services.catalog import Catalog
from posengine.services.order_store import OrderStore
from posengine.services.refresh_controller import RefreshController


def get_order_store(request: Request) -> OrderStore:
    return request.app.state.order_store


def get_catalog(request: Request) -> Catalog:
    return request.app.state.catalog


def get_refresh_controller(request: Request) -> RefreshController:
    return request.app.state.refresh_controller


# Type aliases for dependency injection
OrderStoreDep = Annotated[OrderStore, Depends(get_order_store)]
CatalogDep = Annotated[Catalog, Depends(get_catalog)]
ControllerDep = Annotated[RefreshController, Depends(get_refresh_controller)]
