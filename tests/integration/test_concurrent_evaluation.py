"""
Concurrent evaluation of one relationship must persist one transition,
write one audit entry and send one notification.

Runs on a file-backed SQLite database: the shared in-memory connection used
elsewhere cannot hold two independent transactions.
"""
import asyncio

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from backend.app.core.database import Base
from backend.app.models.lifecycle_orm import CustomerStatus, CustomerRelationshipORM
from backend.app.services.status_coordinator import StatusUpdateCoordinator
from backend.app.services.subscription_gate import BusinessSubscriptionGate
from tests.data.lifecycle_factories import (
    NOW,
    days_ago,
    seed_relationship,
    stored_status,
    log_count,
    RecordingDispatcher,
)


@pytest.fixture
async def file_session_factory(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'lifecycle.db'}",
        connect_args={"timeout": 15},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.mark.asyncio
async def test_parallel_evaluations_apply_transition_once(file_session_factory):
    dispatcher = RecordingDispatcher()
    rel = await seed_relationship(file_session_factory, CustomerStatus.ACTIVE, payments=[days_ago(45)])

    def make_coordinator():
        return StatusUpdateCoordinator(
            file_session_factory,
            dispatcher,
            subscription_gate=BusinessSubscriptionGate(now=NOW),
            clock=lambda: NOW,
        )

    results = await asyncio.gather(
        make_coordinator().evaluate(rel.customer_id, rel.business_id),
        make_coordinator().evaluate(rel.customer_id, rel.business_id),
    )

    assert sum(1 for r in results if r.changed) == 1
    assert all(r.new_status == CustomerStatus.AT_RISK for r in results)
    assert all(r.error is None for r in results)
    assert await stored_status(file_session_factory, rel.id) == CustomerStatus.AT_RISK
    assert await log_count(file_session_factory, rel.id) == 1
    assert len(dispatcher.events) == 1


@pytest.mark.asyncio
async def test_stale_transition_is_rejected(file_session_factory):
    """Two writers that read the same status: only the first conditional update lands."""
    dispatcher = RecordingDispatcher()
    coordinator = StatusUpdateCoordinator(file_session_factory, dispatcher, clock=lambda: NOW)
    rel = await seed_relationship(file_session_factory, CustomerStatus.ACTIVE, payments=[days_ago(45)])

    async with file_session_factory() as first, file_session_factory() as second:
        first_view = await first.get(CustomerRelationshipORM, rel.id)
        second_view = await second.get(CustomerRelationshipORM, rel.id)

        assert await coordinator.apply_transition(
            first, first_view, CustomerStatus.ACTIVE, CustomerStatus.AT_RISK, "first writer", NOW
        )
        await first.commit()

        assert not await coordinator.apply_transition(
            second, second_view, CustomerStatus.ACTIVE, CustomerStatus.AT_RISK, "second writer", NOW
        )
        await second.commit()

    assert await stored_status(file_session_factory, rel.id) == CustomerStatus.AT_RISK
    assert await log_count(file_session_factory, rel.id) == 1
