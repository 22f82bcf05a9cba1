"""
Status Update Coordinator.

Single entry point for re-evaluating one customer/business relationship. Both
the inline payment trigger and the periodic sweep call `evaluate`, so the two
paths share one decision and one write path.

Write path: a conditional UPDATE that only succeeds while the stored status
still equals the value read at decision time. The caller that wins writes the
audit entry in the same transaction and is the only one that notifies; a
caller that loses re-reads and reports the transition as already applied.
"""
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Callable

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.logging import get_logger
from backend.app.core.observability import get_tracer
from backend.app.models.lifecycle_orm import (
    CustomerStatus,
    CustomerRelationshipORM,
    NOTIFIABLE_STATUSES,
)
from backend.app.services.activity_repository import ActivityRepository, LastActivity
from backend.app.services.notification_dispatcher import (
    NotificationDispatcher,
    NotificationEvent,
    DispatchResult,
)
from backend.app.services.status_log import StatusChangeLog
from backend.app.services.status_transition import next_status, describe_transition
from backend.app.services.subscription_gate import SubscriptionGate, BusinessSubscriptionGate
from backend.app.services.threshold_calculator import ThresholdCalculator, Thresholds, days_since

logger = get_logger(__name__)
tracer = get_tracer(__name__)


class LifecycleError(Exception):
    """Base error for the lifecycle engine."""


class RelationshipNotFoundError(LifecycleError):
    def __init__(self, customer_id: str, business_id: str):
        super().__init__(f"No relationship between customer {customer_id} and business {business_id}")
        self.customer_id = customer_id
        self.business_id = business_id


class FuturePaymentError(LifecycleError):
    def __init__(self, paid_at: datetime, now: datetime):
        super().__init__(f"Payment time {paid_at.isoformat()} is later than receipt time {now.isoformat()}")
        self.paid_at = paid_at
        self.now = now


@dataclass
class EvaluationResult:
    customer_id: str
    business_id: str
    # None only when the relationship could not be read
    previous_status: Optional[CustomerStatus]
    new_status: Optional[CustomerStatus]
    changed: bool = False
    days_since_last_activity: Optional[int] = None
    activity_type: Optional[str] = None
    thresholds: Optional[Thresholds] = None
    reason: Optional[str] = None
    # Another caller applied the same transition first
    conflict: bool = False
    notification: Optional[DispatchResult] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class _Decision:
    new_status: CustomerStatus
    last_activity: Optional[LastActivity]
    days_since_last_activity: Optional[int]
    thresholds: Thresholds


class StatusUpdateCoordinator:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher: NotificationDispatcher,
        subscription_gate: Optional[SubscriptionGate] = None,
        threshold_calculator: Optional[ThresholdCalculator] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.subscription_gate = subscription_gate or BusinessSubscriptionGate()
        self.threshold_calculator = threshold_calculator or ThresholdCalculator()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @asynccontextmanager
    async def _unit_of_work(self):
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def _load_relationship(self, session: AsyncSession, customer_id: str, business_id: str) -> CustomerRelationshipORM:
        result = await session.execute(
            select(CustomerRelationshipORM).where(
                (CustomerRelationshipORM.customer_id == customer_id)
                & (CustomerRelationshipORM.business_id == business_id)
            )
        )
        relationship = result.scalars().first()
        if relationship is None:
            raise RelationshipNotFoundError(customer_id, business_id)
        return relationship

    async def _decide(
        self,
        session: AsyncSession,
        customer_id: str,
        business_id: str,
        current: CustomerStatus,
        now: datetime,
    ) -> _Decision:
        activity = ActivityRepository(session)
        last_activity = await activity.resolve_last_activity(customer_id, business_id)
        days = days_since(last_activity.occurred_at, now) if last_activity else None

        payments = await activity.payment_history(customer_id, business_id)
        thresholds = self.threshold_calculator.calculate(payments)

        return _Decision(
            new_status=next_status(current, days, thresholds),
            last_activity=last_activity,
            days_since_last_activity=days,
            thresholds=thresholds,
        )

    async def apply_transition(
        self,
        session: AsyncSession,
        relationship: CustomerRelationshipORM,
        expected: CustomerStatus,
        new_status: CustomerStatus,
        reason: str,
        now: datetime,
    ) -> bool:
        """Conditionally persist a transition plus its audit entry. False if the status moved underneath us."""
        result = await session.execute(
            update(CustomerRelationshipORM)
            .where(
                (CustomerRelationshipORM.id == relationship.id)
                & (CustomerRelationshipORM.status == expected)
            )
            .values(status=new_status, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False

        await StatusChangeLog(session).append(
            relationship_id=relationship.id,
            customer_id=relationship.customer_id,
            business_id=relationship.business_id,
            old_status=expected,
            new_status=new_status,
            reason=reason,
            changed_at=now,
        )
        return True

    async def _current_status(self, session: AsyncSession, relationship_id: str) -> CustomerStatus:
        result = await session.execute(
            select(CustomerRelationshipORM.status).where(CustomerRelationshipORM.id == relationship_id)
        )
        return CustomerStatus(result.scalar_one())

    async def evaluate(self, customer_id: str, business_id: str, now: Optional[datetime] = None) -> EvaluationResult:
        """
        Re-evaluate one relationship and persist the outcome if it changed.

        Raises RelationshipNotFoundError for an unknown pair; every other
        failure is logged and reported on the result.
        """
        now = now or self._clock()

        with tracer.start_as_current_span("customer_status.evaluate") as span:
            span.set_attribute("customer_id", customer_id)
            span.set_attribute("business_id", business_id)

            async with self._unit_of_work() as session:
                try:
                    relationship = await self._load_relationship(session, customer_id, business_id)
                except SQLAlchemyError as e:
                    await session.rollback()
                    logger.error(
                        f"Could not load relationship for customer {customer_id} (business {business_id}): {e}",
                        exc_info=True,
                    )
                    return EvaluationResult(
                        customer_id=customer_id,
                        business_id=business_id,
                        previous_status=None,
                        new_status=None,
                        error=str(e),
                    )

                current = CustomerStatus(relationship.status)
                result = EvaluationResult(
                    customer_id=customer_id,
                    business_id=business_id,
                    previous_status=current,
                    new_status=current,
                )

                if relationship.is_deleted or current is CustomerStatus.NEW:
                    return result

                try:
                    decision = await self._decide(session, customer_id, business_id, current, now)
                except Exception as e:
                    logger.error(
                        f"Status evaluation failed for customer {customer_id} (business {business_id}): {e}",
                        exc_info=True,
                    )
                    result.error = str(e)
                    return result

                result.new_status = decision.new_status
                result.days_since_last_activity = decision.days_since_last_activity
                result.activity_type = decision.last_activity.activity_type if decision.last_activity else None
                result.thresholds = decision.thresholds

                if decision.new_status == current:
                    return result

                reason = describe_transition(
                    current,
                    decision.new_status,
                    decision.days_since_last_activity,
                    decision.thresholds,
                    result.activity_type,
                )

                try:
                    applied = await self.apply_transition(
                        session, relationship, current, decision.new_status, reason, now
                    )
                    if not applied:
                        result.conflict = True
                        result.new_status = await self._current_status(session, relationship.id)
                except Exception as e:
                    await session.rollback()
                    logger.error(
                        f"Status write failed for customer {customer_id} (business {business_id}): {e}",
                        exc_info=True,
                    )
                    result.new_status = current
                    result.error = str(e)
                    return result

            if result.conflict:
                logger.info(
                    f"Transition {current.value}->{decision.new_status.value} for customer {customer_id} "
                    f"already applied by another caller (now {result.new_status.value})"
                )
                return result

            result.changed = True
            result.reason = reason
            span.set_attribute("new_status", decision.new_status.value)
            logger.info(
                f"Customer {customer_id} status {current.value} -> {decision.new_status.value}: {reason}",
                extra={"extra_data": {"business_id": business_id}},
            )

        if decision.new_status in NOTIFIABLE_STATUSES:
            result.notification = await self._notify(
                customer_id, business_id, current, decision.new_status, decision.last_activity, now
            )
        return result

    async def _notify(
        self,
        customer_id: str,
        business_id: str,
        previous: CustomerStatus,
        new_status: CustomerStatus,
        last_activity: Optional[LastActivity],
        now: datetime,
    ) -> DispatchResult:
        """Gate, build and send the transition event. Never raises."""
        try:
            async with self._unit_of_work() as session:
                if not await self.subscription_gate.has_active_subscription(business_id, session):
                    logger.info(f"Business {business_id} has no active subscription; notification skipped")
                    return DispatchResult(success=False, skipped=True, error="subscription_inactive")

                relationship = await self._load_relationship(session, customer_id, business_id)
                event = await self._build_event(session, relationship, previous, new_status, last_activity, now)

            return await self.dispatcher.dispatch(event)
        except Exception as e:
            logger.error(
                f"Notification for customer {customer_id} ({new_status.value}) failed: {e}",
                exc_info=True,
            )
            return DispatchResult(success=False, error=str(e))

    async def _build_event(
        self,
        session: AsyncSession,
        relationship: CustomerRelationshipORM,
        previous: CustomerStatus,
        new_status: CustomerStatus,
        last_activity: Optional[LastActivity],
        now: datetime,
    ) -> NotificationEvent:
        customer = relationship.customer
        business = relationship.business
        activity = ActivityRepository(session)

        service_name = await activity.latest_service_name(relationship.customer_id, relationship.business_id)
        future_appointment = None
        if new_status is CustomerStatus.RECOVERED:
            upcoming = await activity.next_appointment(relationship.customer_id, relationship.business_id, now)
            future_appointment = upcoming.isoformat() if upcoming else None

        return NotificationEvent(
            customer_name=customer.full_name,
            customer_phone=customer.phone,
            business_name=business.name,
            business_type=business.business_type or "general",
            customer_service=service_name or "",
            business_owner_phone=business.owner_phone,
            last_visit_date=last_activity.occurred_at.date().isoformat() if last_activity else None,
            whatsapp_phone=customer.whatsapp_phone,
            trigger_type=new_status,
            previous_status=previous if new_status is CustomerStatus.RECOVERED else None,
            future_appointment=future_appointment,
        )
