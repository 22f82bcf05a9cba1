"""
Activity Repository - read-only access to payment and appointment activity
for one (customer, business) pair.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.models.lifecycle_orm import PaymentORM, AppointmentORM
from backend.app.services.threshold_calculator import as_utc

PAYMENT_SUCCESS = "success"


@dataclass(frozen=True)
class LastActivity:
    occurred_at: datetime
    activity_type: str  # "payment" | "appointment"


class ActivityRepository:
    """Repository for lifecycle activity signals."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _payment_filter(self, customer_id: str, business_id: str):
        return (
            (PaymentORM.customer_id == customer_id)
            & (PaymentORM.business_id == business_id)
            & (PaymentORM.status == PAYMENT_SUCCESS)
        )

    async def last_successful_payment(self, customer_id: str, business_id: str) -> Optional[datetime]:
        result = await self.session.execute(
            select(func.max(PaymentORM.paid_at)).where(self._payment_filter(customer_id, business_id))
        )
        value = result.scalar()
        return as_utc(value) if value is not None else None

    async def last_appointment_activity(self, customer_id: str, business_id: str) -> Optional[datetime]:
        result = await self.session.execute(
            select(func.max(AppointmentORM.updated_at)).where(
                (AppointmentORM.customer_id == customer_id)
                & (AppointmentORM.business_id == business_id)
            )
        )
        value = result.scalar()
        return as_utc(value) if value is not None else None

    async def payment_history(self, customer_id: str, business_id: str) -> list[datetime]:
        """Successful payment timestamps, oldest first."""
        result = await self.session.execute(
            select(PaymentORM.paid_at)
            .where(self._payment_filter(customer_id, business_id))
            .order_by(PaymentORM.paid_at.asc())
        )
        return [as_utc(v) for v in result.scalars().all()]

    async def resolve_last_activity(self, customer_id: str, business_id: str) -> Optional[LastActivity]:
        """
        Most authoritative activity date for the pair.

        Any successful payment wins, even if an appointment was touched more
        recently; appointments only count when there is no payment history.
        """
        paid_at = await self.last_successful_payment(customer_id, business_id)
        if paid_at is not None:
            return LastActivity(occurred_at=paid_at, activity_type="payment")

        touched_at = await self.last_appointment_activity(customer_id, business_id)
        if touched_at is not None:
            return LastActivity(occurred_at=touched_at, activity_type="appointment")

        return None

    async def latest_service_name(self, customer_id: str, business_id: str) -> Optional[str]:
        result = await self.session.execute(
            select(AppointmentORM.service_name)
            .where(
                (AppointmentORM.customer_id == customer_id)
                & (AppointmentORM.business_id == business_id)
            )
            .order_by(AppointmentORM.start_at.desc())
            .limit(1)
        )
        return result.scalar()

    async def next_appointment(self, customer_id: str, business_id: str, after: datetime) -> Optional[datetime]:
        result = await self.session.execute(
            select(func.min(AppointmentORM.start_at)).where(
                (AppointmentORM.customer_id == customer_id)
                & (AppointmentORM.business_id == business_id)
                & (AppointmentORM.start_at > after)
            )
        )
        value = result.scalar()
        return as_utc(value) if value is not None else None
