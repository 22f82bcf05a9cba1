"""
Integration tests for the inline payment trigger.
"""
from datetime import timedelta

import pytest

from backend.app.models.lifecycle_orm import CustomerStatus
from backend.app.services.payment_hook import PaymentHook
from backend.app.services.status_coordinator import RelationshipNotFoundError, FuturePaymentError
from backend.app.services.status_log import StatusChangeLog
from tests.data.lifecycle_factories import NOW, days_ago, seed_relationship, stored_status, log_count


@pytest.mark.asyncio
async def test_first_payment_promotes_new_to_active(session_factory, coordinator, dispatcher):
    rel = await seed_relationship(session_factory, CustomerStatus.NEW)

    outcome = await PaymentHook(session_factory, coordinator).record_successful_payment(
        rel.customer_id, rel.business_id, now=NOW
    )

    assert outcome.promoted_to_active
    assert outcome.payment_id
    assert outcome.evaluation.new_status == CustomerStatus.ACTIVE
    assert not outcome.evaluation.changed
    assert await stored_status(session_factory, rel.id) == CustomerStatus.ACTIVE

    async with session_factory() as session:
        history = await StatusChangeLog(session).history(rel.customer_id, rel.business_id)
    assert len(history) == 1
    assert history[0].reason == "Customer became active with regular payment"
    # Activation is not a notifiable transition
    assert dispatcher.events == []


@pytest.mark.asyncio
async def test_payment_recovers_lost_customer_inline(session_factory, coordinator, dispatcher):
    rel = await seed_relationship(session_factory, CustomerStatus.LOST, payments=[days_ago(90)])

    outcome = await PaymentHook(session_factory, coordinator).record_successful_payment(
        rel.customer_id, rel.business_id, now=NOW
    )

    assert not outcome.promoted_to_active
    assert outcome.evaluation.changed
    assert outcome.evaluation.new_status == CustomerStatus.RECOVERED
    assert await stored_status(session_factory, rel.id) == CustomerStatus.RECOVERED
    assert [e.trigger_type for e in dispatcher.events] == [CustomerStatus.RECOVERED]


@pytest.mark.asyncio
async def test_payment_for_active_customer_changes_nothing(session_factory, coordinator):
    rel = await seed_relationship(session_factory, CustomerStatus.ACTIVE, payments=[days_ago(20)])

    outcome = await PaymentHook(session_factory, coordinator).record_successful_payment(
        rel.customer_id, rel.business_id, paid_at=NOW, now=NOW
    )

    assert not outcome.evaluation.changed
    assert await log_count(session_factory, rel.id) == 0


@pytest.mark.asyncio
async def test_payment_for_unknown_pair_rejected(session_factory, coordinator):
    with pytest.raises(RelationshipNotFoundError):
        await PaymentHook(session_factory, coordinator).record_successful_payment("nobody", "nowhere", now=NOW)


@pytest.mark.asyncio
async def test_payment_for_deleted_relationship_rejected(session_factory, coordinator):
    rel = await seed_relationship(session_factory, CustomerStatus.ACTIVE, is_deleted=True)

    with pytest.raises(RelationshipNotFoundError):
        await PaymentHook(session_factory, coordinator).record_successful_payment(
            rel.customer_id, rel.business_id, now=NOW
        )


@pytest.mark.asyncio
async def test_evaluation_failure_keeps_payment(session_factory):
    rel = await seed_relationship(session_factory, CustomerStatus.LOST, payments=[days_ago(90)])

    class FailingCoordinator:
        async def evaluate(self, *args, **kwargs):
            raise RuntimeError("evaluation down")

    outcome = await PaymentHook(session_factory, FailingCoordinator()).record_successful_payment(
        rel.customer_id, rel.business_id, now=NOW
    )

    assert outcome.evaluation is None
    assert outcome.payment_id
    assert await stored_status(session_factory, rel.id) == CustomerStatus.LOST


@pytest.mark.asyncio
async def test_future_dated_payment_rejected(session_factory, coordinator, dispatcher):
    rel = await seed_relationship(
        session_factory,
        CustomerStatus.ACTIVE,
        payments=[days_ago(20), days_ago(15), days_ago(10), days_ago(5)],
    )

    with pytest.raises(FuturePaymentError):
        await PaymentHook(session_factory, coordinator).record_successful_payment(
            rel.customer_id, rel.business_id, paid_at=NOW + timedelta(days=45), now=NOW
        )

    assert await stored_status(session_factory, rel.id) == CustomerStatus.ACTIVE
    assert await log_count(session_factory, rel.id) == 0
    assert dispatcher.events == []
