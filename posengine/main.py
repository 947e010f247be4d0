"""FastAPI application entry point."""

import json
import logging
import sys
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware

from posengine import __version__
from posengine.api.routes import api_router
from posengine.core.config import Settings, settings
from posengine.core.exceptions import (
    ConcurrentModificationError,
    EmptyReasonError,
    InvalidCartError,
    InvalidTransitionError,
    NotFoundError,
    OrderEngineError,
    PersistenceError,
)
from posengine.core.rate_limit import limiter
from posengine.db.base import Base
from posengine.db.session import SessionLocal, engine
from posengine.services.catalog import Catalog
from posengine.services.document_store import DocumentStore, SqlDocumentStore
from posengine.services.order_store import OrderStore
from posengine.services.refresh_controller import RefreshController


class JSONFormatter(logging.Formatter):
    def format(self, record):
        return json.dumps({
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        })


def configure_logging(app_settings: Settings) -> None:
    """JSON logs in production, human-readable in dev."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, app_settings.log_level))
    root_logger.handlers.clear()

    if app_settings.debug:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())

    root_logger.addHandler(handler)


logger = logging.getLogger(__name__)
request_logger = logging.getLogger("requests")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging all HTTP requests and responses."""

    async def dispatch(self, request: Request, call_next):
        # Skip logging for health checks and docs
        if request.url.path in ["/health", "/", "/docs", "/openapi.json"]:
            return await call_next(request)

        start_time = time.time()
        client_ip = request.client.host if request.client else "unknown"

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            request_logger.error(
                f"Error: {request.method} {request.url.path} - "
                f"Exception: {str(e)} - Time: {process_time:.3f}s - Client: {client_ip}"
            )
            raise

        process_time = time.time() - start_time
        log_level = logging.WARNING if response.status_code >= 400 else logging.INFO
        request_logger.log(
            log_level,
            f"{request.method} {request.url.path} - "
            f"Status: {response.status_code} - Time: {process_time:.3f}s - Client: {client_ip}"
        )
        return response


# Domain error -> HTTP status
ERROR_STATUS = {
    InvalidCartError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    EmptyReasonError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
    ConcurrentModificationError: status.HTTP_409_CONFLICT,
    PersistenceError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


async def order_engine_error_handler(request: Request, exc: OrderEngineError) -> JSONResponse:
    status_code = next(
        (code for error_type, code in ERROR_STATUS.items() if isinstance(exc, error_type)),
        status.HTTP_400_BAD_REQUEST,
    )
    body = {"detail": str(exc), "error": exc.__class__.__name__}
    if isinstance(exc, InvalidCartError) and exc.unknown_item_ids:
        body["unknown_item_ids"] = exc.unknown_item_ids
    if isinstance(exc, InvalidTransitionError):
        body["source"] = exc.source
        body["target"] = exc.target
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status_code, content=body)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    app_settings: Settings = app.state.settings
    logger.info("Starting order engine")

    if app.state.owns_database:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables ensured")

    controller: RefreshController = app.state.refresh_controller
    await controller.start(poll=app_settings.refresh_enabled)

    yield

    await controller.stop()
    logger.info("Shutting down order engine")


def create_app(
    document_store: Optional[DocumentStore] = None,
    app_settings: Optional[Settings] = None,
    poll_interval: Optional[float] = None,
) -> FastAPI:
    """Build the application around a document store.

    Without an explicit store the SQL store on the configured database is
    used and its tables are created on startup.
    """
    app_settings = app_settings or settings

    app = FastAPI(
        title="POS Order Engine",
        description="Order lifecycle and sales reporting API",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if app_settings.debug else None,
        redoc_url="/redoc" if app_settings.debug else None,
    )

    store = document_store or SqlDocumentStore(SessionLocal)
    catalog = Catalog(store)
    order_store = OrderStore(store, catalog, retry_limit=app_settings.update_retry_limit)
    app.state.settings = app_settings
    app.state.owns_database = document_store is None
    app.state.document_store = store
    app.state.catalog = catalog
    app.state.order_store = order_store
    app.state.refresh_controller = RefreshController(
        order_store,
        interval=poll_interval if poll_interval is not None else app_settings.poll_interval_seconds,
    )

    # Rate limiting setup
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(OrderEngineError, order_engine_error_handler)

    app.add_middleware(RequestLoggingMiddleware)

    # CORS middleware last so it runs first (Starlette LIFO order)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept", "Origin", "X-Requested-With"],
        max_age=600,
    )

    app.include_router(api_router, prefix=app_settings.api_v1_prefix)

    @app.get("/health")
    def health_check(request: Request):
        """Liveness check with the refresh controller state."""
        sync = request.app.state.refresh_controller.status()
        return {"status": "healthy", "version": __version__, "sync": sync.status}

    return app


configure_logging(settings)
app = create_app()
