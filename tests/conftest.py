"""
Pytest configuration and fixtures.
"""

from typing import AsyncGenerator

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from backend.app.main import app
from backend.app.core.database import Base, get_db, get_session_factory
from backend.app.api.customer_status import get_notification_dispatcher

# Import all models to register them with Base.metadata
import backend.app.models  # noqa: F401

from backend.app.services.status_coordinator import StatusUpdateCoordinator
from backend.app.services.subscription_gate import BusinessSubscriptionGate
from tests.data.lifecycle_factories import NOW, RecordingDispatcher

# Use in-memory SQLite for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)


@pytest.fixture(scope="function")
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """
    Session factory over a freshly created schema.
    Tables are dropped after each test.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield TestingSessionLocal

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def coordinator(session_factory, dispatcher) -> StatusUpdateCoordinator:
    return StatusUpdateCoordinator(
        session_factory,
        dispatcher,
        subscription_gate=BusinessSubscriptionGate(now=NOW),
        clock=lambda: NOW,
    )


@pytest.fixture(scope="function")
async def client(session_factory, dispatcher) -> AsyncGenerator[AsyncClient, None]:
    """
    Test client with database and notification dependencies overridden.
    """
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            finally:
                await session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
