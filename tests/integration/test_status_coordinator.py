"""
Integration tests for StatusUpdateCoordinator.evaluate against a real schema.
"""
from datetime import timedelta

import pytest
from sqlalchemy import text

from backend.app.models.lifecycle_orm import CustomerStatus, BusinessORM
from backend.app.services.status_coordinator import StatusUpdateCoordinator, RelationshipNotFoundError
from backend.app.services.status_log import StatusChangeLog
from backend.app.services.subscription_gate import BusinessSubscriptionGate, AllowAllSubscriptionGate
from backend.app.services.threshold_calculator import ThresholdCalculator
from tests.data.lifecycle_factories import (
    NOW,
    days_ago,
    seed_relationship,
    stored_status,
    log_count,
    ExplodingDispatcher,
)


class BrokenCalculator(ThresholdCalculator):
    def calculate(self, payment_dates):
        raise RuntimeError("history unavailable")


@pytest.mark.asyncio
async def test_active_goes_at_risk_after_45_days(session_factory, coordinator, dispatcher):
    rel = await seed_relationship(session_factory, CustomerStatus.ACTIVE, payments=[days_ago(45)])

    result = await coordinator.evaluate(rel.customer_id, rel.business_id)

    assert result.changed
    assert result.previous_status == CustomerStatus.ACTIVE
    assert result.new_status == CustomerStatus.AT_RISK
    assert result.days_since_last_activity == 45
    assert result.activity_type == "payment"
    assert result.thresholds.uses_defaults
    assert result.reason == "No payment for 45 days (threshold: 30 days)"
    assert await stored_status(session_factory, rel.id) == CustomerStatus.AT_RISK
    assert await log_count(session_factory, rel.id) == 1
    assert len(dispatcher.events) == 1
    assert result.notification.success


@pytest.mark.asyncio
async def test_at_risk_goes_lost_after_65_days(session_factory, coordinator, dispatcher):
    rel = await seed_relationship(session_factory, CustomerStatus.AT_RISK, payments=[days_ago(65)])

    result = await coordinator.evaluate(rel.customer_id, rel.business_id)

    assert result.new_status == CustomerStatus.LOST
    assert result.reason == "No payment for 65 days (threshold: 60 days)"
    assert await stored_status(session_factory, rel.id) == CustomerStatus.LOST
    assert dispatcher.events[0].trigger_type == CustomerStatus.LOST


@pytest.mark.asyncio
async def test_lost_customer_paying_today_is_recovered(session_factory, coordinator, dispatcher):
    rel = await seed_relationship(
        session_factory,
        CustomerStatus.LOST,
        payments=[NOW],
        appointments=[NOW + timedelta(days=7)],
    )

    result = await coordinator.evaluate(rel.customer_id, rel.business_id)

    assert result.days_since_last_activity == 0
    assert result.new_status == CustomerStatus.RECOVERED
    assert result.reason == "Customer returned with payment after being lost"

    event = dispatcher.events[0]
    assert event.trigger_type == CustomerStatus.RECOVERED
    assert event.previous_status == CustomerStatus.LOST
    assert event.future_appointment == (NOW + timedelta(days=7)).isoformat()
    assert event.to_payload()["action"] == "owner"


@pytest.mark.asyncio
async def test_evaluate_twice_is_idempotent(session_factory, coordinator, dispatcher):
    rel = await seed_relationship(session_factory, CustomerStatus.ACTIVE, payments=[days_ago(45)])

    first = await coordinator.evaluate(rel.customer_id, rel.business_id)
    second = await coordinator.evaluate(rel.customer_id, rel.business_id)

    assert first.changed
    assert not second.changed
    assert second.previous_status == second.new_status == CustomerStatus.AT_RISK
    assert await log_count(session_factory, rel.id) == 1
    assert len(dispatcher.events) == 1


@pytest.mark.asyncio
async def test_decline_is_stepwise_across_evaluations(session_factory, coordinator):
    rel = await seed_relationship(session_factory, CustomerStatus.ACTIVE, payments=[days_ago(120)])

    first = await coordinator.evaluate(rel.customer_id, rel.business_id)
    second = await coordinator.evaluate(rel.customer_id, rel.business_id)

    assert first.new_status == CustomerStatus.AT_RISK
    assert second.new_status == CustomerStatus.LOST


@pytest.mark.asyncio
async def test_recent_activity_keeps_status(session_factory, coordinator, dispatcher):
    rel = await seed_relationship(session_factory, CustomerStatus.ACTIVE, payments=[days_ago(3)])

    result = await coordinator.evaluate(rel.customer_id, rel.business_id)

    assert not result.changed
    assert result.new_status == CustomerStatus.ACTIVE
    assert result.reason is None
    assert await log_count(session_factory, rel.id) == 0
    assert dispatcher.events == []


@pytest.mark.asyncio
async def test_no_activity_at_all_keeps_status(session_factory, coordinator):
    rel = await seed_relationship(session_factory, CustomerStatus.ACTIVE)

    result = await coordinator.evaluate(rel.customer_id, rel.business_id)

    assert not result.changed
    assert result.days_since_last_activity is None
    assert result.activity_type is None


@pytest.mark.asyncio
async def test_new_relationship_is_never_changed_by_evaluation(session_factory, coordinator):
    rel = await seed_relationship(session_factory, CustomerStatus.NEW, payments=[days_ago(90)])

    result = await coordinator.evaluate(rel.customer_id, rel.business_id)

    assert not result.changed
    assert await stored_status(session_factory, rel.id) == CustomerStatus.NEW


@pytest.mark.asyncio
async def test_soft_deleted_relationship_is_skipped(session_factory, coordinator):
    rel = await seed_relationship(
        session_factory, CustomerStatus.ACTIVE, payments=[days_ago(45)], is_deleted=True
    )

    result = await coordinator.evaluate(rel.customer_id, rel.business_id)

    assert not result.changed
    assert await stored_status(session_factory, rel.id) == CustomerStatus.ACTIVE


@pytest.mark.asyncio
async def test_unknown_pair_raises(session_factory, coordinator):
    with pytest.raises(RelationshipNotFoundError):
        await coordinator.evaluate("missing-customer", "missing-business")


@pytest.mark.asyncio
async def test_appointment_used_when_no_payment_exists(session_factory, coordinator):
    rel = await seed_relationship(session_factory, CustomerStatus.ACTIVE, appointments=[days_ago(45)])

    result = await coordinator.evaluate(rel.customer_id, rel.business_id)

    assert result.activity_type == "appointment"
    assert result.new_status == CustomerStatus.AT_RISK
    assert result.reason == "No appointment for 45 days (threshold: 30 days)"


@pytest.mark.asyncio
async def test_payment_wins_over_more_recent_appointment(session_factory, coordinator):
    rel = await seed_relationship(
        session_factory,
        CustomerStatus.ACTIVE,
        payments=[days_ago(45)],
        appointments=[days_ago(2)],
    )

    result = await coordinator.evaluate(rel.customer_id, rel.business_id)

    assert result.activity_type == "payment"
    assert result.days_since_last_activity == 45
    assert result.new_status == CustomerStatus.AT_RISK


@pytest.mark.asyncio
async def test_adaptive_thresholds_from_payment_cadence(session_factory, coordinator):
    # Weekly customer: 10 days of silence is already at risk
    rel = await seed_relationship(
        session_factory,
        CustomerStatus.ACTIVE,
        payments=[days_ago(31), days_ago(24), days_ago(17), days_ago(10)],
    )

    result = await coordinator.evaluate(rel.customer_id, rel.business_id)

    assert result.thresholds.at_risk_days == 7
    assert result.thresholds.lost_days == 60
    assert result.new_status == CustomerStatus.AT_RISK
    assert result.reason == "No payment for 10 days (threshold: 7 days)"


@pytest.mark.asyncio
async def test_inactive_subscription_records_change_without_notifying(session_factory, coordinator, dispatcher):
    rel = await seed_relationship(
        session_factory, CustomerStatus.ACTIVE, payments=[days_ago(45)], subscription_status="canceled"
    )

    result = await coordinator.evaluate(rel.customer_id, rel.business_id)

    assert result.changed
    assert result.notification.skipped
    assert result.notification.error == "subscription_inactive"
    assert dispatcher.events == []
    assert await log_count(session_factory, rel.id) == 1


@pytest.mark.asyncio
async def test_expired_subscription_period_blocks_notification(session_factory, dispatcher):
    rel = await seed_relationship(session_factory, CustomerStatus.ACTIVE, payments=[days_ago(45)])
    async with session_factory() as session:
        business = await session.get(BusinessORM, rel.business_id)
        business.subscription_current_period_end = days_ago(1)
        await session.commit()

    coordinator = StatusUpdateCoordinator(
        session_factory, dispatcher, subscription_gate=BusinessSubscriptionGate(now=NOW), clock=lambda: NOW
    )
    result = await coordinator.evaluate(rel.customer_id, rel.business_id)

    assert result.changed
    assert result.notification.skipped
    assert dispatcher.events == []


@pytest.mark.asyncio
async def test_allow_all_gate_notifies_without_subscription(session_factory, dispatcher):
    rel = await seed_relationship(
        session_factory, CustomerStatus.ACTIVE, payments=[days_ago(45)], subscription_status=None
    )
    coordinator = StatusUpdateCoordinator(
        session_factory, dispatcher, subscription_gate=AllowAllSubscriptionGate(), clock=lambda: NOW
    )

    result = await coordinator.evaluate(rel.customer_id, rel.business_id)

    assert result.notification.success
    assert len(dispatcher.events) == 1


@pytest.mark.asyncio
async def test_dispatcher_failure_does_not_undo_transition(session_factory):
    rel = await seed_relationship(session_factory, CustomerStatus.ACTIVE, payments=[days_ago(45)])
    coordinator = StatusUpdateCoordinator(
        session_factory,
        ExplodingDispatcher(),
        subscription_gate=BusinessSubscriptionGate(now=NOW),
        clock=lambda: NOW,
    )

    result = await coordinator.evaluate(rel.customer_id, rel.business_id)

    assert result.changed
    assert not result.notification.success
    assert "dispatcher crashed" in result.notification.error
    assert await stored_status(session_factory, rel.id) == CustomerStatus.AT_RISK


@pytest.mark.asyncio
async def test_decision_failure_is_reported_not_raised(session_factory, dispatcher):
    rel = await seed_relationship(session_factory, CustomerStatus.ACTIVE, payments=[days_ago(45)])
    coordinator = StatusUpdateCoordinator(
        session_factory, dispatcher, threshold_calculator=BrokenCalculator(), clock=lambda: NOW
    )

    result = await coordinator.evaluate(rel.customer_id, rel.business_id)

    assert not result.changed
    assert result.error == "history unavailable"
    assert await stored_status(session_factory, rel.id) == CustomerStatus.ACTIVE


@pytest.mark.asyncio
async def test_notification_event_content(session_factory, coordinator, dispatcher):
    rel = await seed_relationship(
        session_factory,
        CustomerStatus.ACTIVE,
        payments=[days_ago(45)],
        appointments=[days_ago(46)],
        customer_name="Noa Katz",
        service_name="Beard trim",
    )

    await coordinator.evaluate(rel.customer_id, rel.business_id)

    event = dispatcher.events[0]
    payload = event.to_payload()
    assert payload["customer_name"] == "Noa Katz"
    assert payload["business_name"] == "Studio Nova"
    assert payload["business_type"] == "salon"
    assert payload["customer_service"] == "Beard trim"
    assert payload["customer_status"] == "at_risk"
    assert payload["action"] == "client"
    assert payload["last_visit_date"] == days_ago(45).date().isoformat()
    assert payload["whatsapp_phone"] == payload["customer_phone"] == "+972500000002"
    assert payload["previous_status"] is None


@pytest.mark.asyncio
async def test_transition_is_visible_in_history(session_factory, coordinator):
    rel = await seed_relationship(session_factory, CustomerStatus.ACTIVE, payments=[days_ago(45)])

    await coordinator.evaluate(rel.customer_id, rel.business_id)

    async with session_factory() as session:
        history = await StatusChangeLog(session).history(rel.customer_id, rel.business_id)
    assert len(history) == 1
    assert history[0].old_status == CustomerStatus.ACTIVE
    assert history[0].new_status == CustomerStatus.AT_RISK
    assert history[0].customer_name == "Dana Levi"


@pytest.mark.asyncio
async def test_future_dated_payment_counts_as_current_activity(session_factory, coordinator, dispatcher):
    rel = await seed_relationship(
        session_factory,
        CustomerStatus.ACTIVE,
        payments=[days_ago(20), days_ago(15), days_ago(10), days_ago(5), NOW + timedelta(days=45)],
    )

    result = await coordinator.evaluate(rel.customer_id, rel.business_id)

    assert result.days_since_last_activity == 0
    assert not result.changed
    assert result.new_status == CustomerStatus.ACTIVE
    assert await log_count(session_factory, rel.id) == 0
    assert dispatcher.events == []


@pytest.mark.asyncio
async def test_database_error_while_loading_is_reported(session_factory, coordinator):
    rel = await seed_relationship(session_factory, CustomerStatus.ACTIVE, payments=[days_ago(45)])
    async with session_factory() as session:
        await session.execute(text("DROP TABLE customer_status_logs"))
        await session.execute(text("DROP TABLE customer_relationships"))
        await session.commit()

    result = await coordinator.evaluate(rel.customer_id, rel.business_id)

    assert not result.changed
    assert result.previous_status is None
    assert "customer_relationships" in result.error
