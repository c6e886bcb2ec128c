"""
Pytest fixtures for test database, client, and authentication.

Each test gets its own SQLite file so independent sessions behave like
separate connections racing on the same ledger.
"""

import os

# Configure before the application modules read settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["REDIS_ENABLED"] = "false"
os.environ["EXPIRY_SWEEP_ENABLED"] = "false"
os.environ["EVENT_PUBLISHER"] = "local"
os.environ["COMMIT_RETRY_BASE_DELAY"] = "0.001"

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from booking_core.main import app
from booking_core.db.base import Base
from booking_core.db.session import get_db
from booking_core.core.security import create_access_token
from booking_core.schemas.container import ContainerCreate
from booking_core.services import catalog_service
from booking_core.services.interfaces.local_publisher import LocalPublisher
from booking_core.services.publisher_factory import set_publisher


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    """Fresh database file per test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'reservations.db'}",
        connect_args={"timeout": 15},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose requests each get their own session, like production."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def published_events():
    """Fresh in-process publisher per test; returns the list of emitted events."""
    events = []
    publisher = LocalPublisher()

    async def collect(event):
        events.append(event)

    publisher.subscribe(collect)
    set_publisher(publisher)
    yield events
    set_publisher(None)


def auth_headers_for(requester_id: str) -> dict:
    token = create_access_token(data={"sub": requester_id})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers() -> dict:
    """Authorization headers for requester U1."""
    return auth_headers_for("U1")


@pytest.fixture
def other_auth_headers() -> dict:
    """Authorization headers for requester U2."""
    return auth_headers_for("U2")


async def seed_event(session_factory, container_id="E1", rows=("A",), columns=(1, 2, 3), price=100):
    data = ContainerCreate(
        id=container_id,
        kind="event",
        title="Test Concert",
        venue="Test Venue",
        base_price=price,
        layout={"sections": [{"name": "Floor", "rows": list(rows), "columns": list(columns), "price": price}]},
    )
    async with session_factory() as session:
        return await catalog_service.import_container(session, data)


async def seed_lot(session_factory, container_id="L1"):
    data = ContainerCreate(
        id=container_id,
        kind="lot",
        title="North Lot",
        slots=[
            {"slot_number": "C-02", "slot_type": "car", "price": 50},
            {"slot_number": "C-01", "slot_type": "car", "price": 50},
            {"slot_number": "B-01", "slot_type": "bike", "price": 20},
        ],
    )
    async with session_factory() as session:
        return await catalog_service.import_container(session, data)


@pytest_asyncio.fixture
async def test_event(session_factory):
    """Container E1 with seats Floor-A1..Floor-A3 at 100 each."""
    return await seed_event(session_factory)


@pytest_asyncio.fixture
async def large_event(session_factory):
    """Container BIG with 2 rows x 10 seats."""
    return await seed_event(session_factory, container_id="BIG", rows=("A", "B"), columns=range(1, 11))


@pytest_asyncio.fixture
async def test_lot(session_factory):
    """Container L1 with car slots C-01, C-02 and bike slot B-01."""
    return await seed_lot(session_factory)


@pytest_asyncio.fixture
async def huge_event(session_factory):
    """Container HUGE with 3 rows x 70 seats."""
    return await seed_event(session_factory, container_id="HUGE", rows=("A", "B", "C"), columns=range(1, 71))
