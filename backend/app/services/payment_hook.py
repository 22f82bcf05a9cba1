"""
Inline status trigger for payment ingestion.

Called right after a successful payment is received: stores the payment,
promotes a NEW relationship to ACTIVE (the only path out of NEW), then
re-evaluates the relationship through the coordinator so a returning
at-risk or lost customer is marked recovered without waiting for the sweep.
"""
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.logging import get_logger
from backend.app.models.lifecycle_orm import CustomerStatus, CustomerRelationshipORM, PaymentORM
from backend.app.services.activity_repository import PAYMENT_SUCCESS
from backend.app.services.status_coordinator import (
    StatusUpdateCoordinator,
    EvaluationResult,
    RelationshipNotFoundError,
    FuturePaymentError,
)
from backend.app.services.status_transition import describe_transition
from backend.app.services.threshold_calculator import as_utc

logger = get_logger(__name__)


@dataclass
class PaymentOutcome:
    payment_id: str
    promoted_to_active: bool
    evaluation: Optional[EvaluationResult] = None


class PaymentHook:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        coordinator: StatusUpdateCoordinator,
    ):
        self.session_factory = session_factory
        self.coordinator = coordinator

    @asynccontextmanager
    async def _get_session(self):
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def record_successful_payment(
        self,
        customer_id: str,
        business_id: str,
        paid_at: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> PaymentOutcome:
        """Raises RelationshipNotFoundError for an unknown or deleted pair and FuturePaymentError when `paid_at` is later than `now`."""
        now = now or datetime.now(timezone.utc)
        paid_at = as_utc(paid_at) if paid_at else now
        if paid_at > as_utc(now):
            raise FuturePaymentError(paid_at, now)

        async with self._get_session() as session:
            result = await session.execute(
                select(CustomerRelationshipORM).where(
                    (CustomerRelationshipORM.customer_id == customer_id)
                    & (CustomerRelationshipORM.business_id == business_id)
                    & (CustomerRelationshipORM.is_deleted.is_(False))
                )
            )
            relationship = result.scalars().first()
            if relationship is None:
                raise RelationshipNotFoundError(customer_id, business_id)

            payment = PaymentORM(
                customer_id=customer_id,
                business_id=business_id,
                status=PAYMENT_SUCCESS,
                paid_at=paid_at,
            )
            session.add(payment)
            await session.flush()

            promoted = False
            if relationship.status == CustomerStatus.NEW:
                promoted = await self.coordinator.apply_transition(
                    session,
                    relationship,
                    CustomerStatus.NEW,
                    CustomerStatus.ACTIVE,
                    describe_transition(CustomerStatus.NEW, CustomerStatus.ACTIVE, 0, None, "payment"),
                    now,
                )

        logger.info(
            f"Recorded payment {payment.id} for customer {customer_id} (business {business_id})"
            + (" and promoted to active" if promoted else "")
        )

        outcome = PaymentOutcome(payment_id=payment.id, promoted_to_active=promoted)
        try:
            outcome.evaluation = await self.coordinator.evaluate(customer_id, business_id, now=now)
        except Exception as e:
            # The payment is committed; the next sweep will pick the relationship up
            logger.error(f"Inline status evaluation failed for customer {customer_id}: {e}", exc_info=True)
        return outcome
