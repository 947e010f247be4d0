"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, Generator

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from posengine.db.base import Base
from posengine.models import Document, Sequence  # noqa: F401  (register tables)
from posengine.schemas.menu import MenuItem, MenuItemCreate
from posengine.services.catalog import Catalog
from posengine.services.document_store import SqlDocumentStore
from posengine.services.order_store import OrderStore

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

MENU = [
    MenuItemCreate(name="Chicken Adobo", price=Decimal("150"), cost=Decimal("60"), category="Mains"),
    MenuItemCreate(name="Iced Tea", price=Decimal("80"), cost=Decimal("20"), category="Drinks"),
    MenuItemCreate(name="Halo-Halo", price=Decimal("120"), cost=Decimal("45"), category="Desserts"),
    MenuItemCreate(name="Garlic Rice", price=Decimal("50"), cost=Decimal("10"), category="Sides"),
]


class FakeClock:
    """Deterministic clock that moves one second forward per reading."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        value = self.now
        self.now += timedelta(seconds=1)
        return value


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def document_store(session_factory) -> SqlDocumentStore:
    return SqlDocumentStore(session_factory)


@pytest.fixture
def catalog(document_store) -> Catalog:
    return Catalog(document_store)


@pytest_asyncio.fixture
async def menu(catalog) -> Dict[str, MenuItem]:
    """Seed the menu; ids 1-4 in the order of MENU."""
    items = {}
    for payload in MENU:
        item = await catalog.create_menu_item(payload)
        items[item.name] = item
    return items


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 11, 2, 0, tzinfo=timezone.utc))


@pytest_asyncio.fixture
async def order_store(document_store, catalog, menu, clock) -> OrderStore:
    return OrderStore(document_store, catalog, retry_limit=3, clock=clock)


@pytest.fixture(scope="function")
def client(document_store) -> Generator[TestClient, None, None]:
    """Test client over the in-memory store with a seeded menu."""
    from posengine.core.rate_limit import limiter
    from posengine.main import create_app

    app = create_app(document_store=document_store, poll_interval=3600)
    # Disable rate limiter during tests to avoid flaky failures
    limiter.enabled = False
    with TestClient(app, raise_server_exceptions=False) as test_client:
        for payload in MENU:
            response = test_client.post("/api/v1/menu-items/", json=payload.model_dump(mode="json"))
            assert response.status_code == 201
        yield test_client
    limiter.enabled = True


@pytest.fixture
def menu_payloads():
    return list(MENU)
