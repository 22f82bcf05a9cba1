"""
Customer Status Change Log.

Append-only audit trail of realized lifecycle transitions. Entries are written
inside the same transaction as the status update that produced them and are
never modified or deleted by this service.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select, desc
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.logging import correlation_id_ctx
from backend.app.models.lifecycle_orm import CustomerStatus, CustomerORM, BusinessORM
from backend.app.models.status_log_orm import CustomerStatusLogORM


@dataclass(frozen=True)
class StatusChange:
    id: str
    relationship_id: str
    customer_id: str
    business_id: str
    customer_name: Optional[str]
    customer_phone: Optional[str]
    business_name: Optional[str]
    old_status: CustomerStatus
    new_status: CustomerStatus
    reason: str
    changed_at: datetime


class StatusChangeLog:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(
        self,
        relationship_id: str,
        customer_id: str,
        business_id: str,
        old_status: CustomerStatus,
        new_status: CustomerStatus,
        reason: str,
        changed_at: Optional[datetime] = None,
    ) -> CustomerStatusLogORM:
        entry = CustomerStatusLogORM(
            relationship_id=relationship_id,
            customer_id=customer_id,
            business_id=business_id,
            old_status=old_status,
            new_status=new_status,
            reason=reason,
            changed_at=changed_at or datetime.now(timezone.utc),
            trace_id=correlation_id_ctx.get(),
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    def _joined(self):
        return (
            select(CustomerStatusLogORM, CustomerORM.full_name, CustomerORM.phone, BusinessORM.name)
            .join(CustomerORM, CustomerORM.id == CustomerStatusLogORM.customer_id, isouter=True)
            .join(BusinessORM, BusinessORM.id == CustomerStatusLogORM.business_id, isouter=True)
        )

    @staticmethod
    def _to_change(row) -> StatusChange:
        entry, customer_name, customer_phone, business_name = row
        return StatusChange(
            id=entry.id,
            relationship_id=entry.relationship_id,
            customer_id=entry.customer_id,
            business_id=entry.business_id,
            customer_name=customer_name,
            customer_phone=customer_phone,
            business_name=business_name,
            old_status=entry.old_status,
            new_status=entry.new_status,
            reason=entry.reason,
            changed_at=entry.changed_at,
        )

    async def recent(
        self,
        hours: float = 24,
        business_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> list[StatusChange]:
        """Changes within the last `hours`, newest first."""
        since = (now or datetime.now(timezone.utc)) - timedelta(hours=hours)
        query = self._joined().where(CustomerStatusLogORM.changed_at >= since)
        if business_id:
            query = query.where(CustomerStatusLogORM.business_id == business_id)
        query = query.order_by(desc(CustomerStatusLogORM.changed_at))

        result = await self.session.execute(query)
        return [self._to_change(row) for row in result.all()]

    async def history(self, customer_id: str, business_id: str) -> list[StatusChange]:
        """Full transition history of one relationship, newest first."""
        query = (
            self._joined()
            .where(
                (CustomerStatusLogORM.customer_id == customer_id)
                & (CustomerStatusLogORM.business_id == business_id)
            )
            .order_by(desc(CustomerStatusLogORM.changed_at))
        )
        result = await self.session.execute(query)
        return [self._to_change(row) for row in result.all()]
