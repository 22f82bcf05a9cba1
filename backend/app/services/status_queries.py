"""Read-only population queries over customer relationships."""
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.models.lifecycle_orm import CustomerStatus, CustomerRelationshipORM


def _live(business_id: Optional[str]):
    condition = CustomerRelationshipORM.is_deleted.is_(False)
    if business_id:
        condition = condition & (CustomerRelationshipORM.business_id == business_id)
    return condition


async def status_statistics(session: AsyncSession, business_id: Optional[str] = None) -> dict[str, int]:
    """Current population counts by status, plus the total."""
    result = await session.execute(
        select(CustomerRelationshipORM.status, func.count())
        .where(_live(business_id))
        .group_by(CustomerRelationshipORM.status)
    )
    stats = {status.value: 0 for status in CustomerStatus}
    for status, count in result.all():
        stats[CustomerStatus(status).value] = count
    stats["total"] = sum(stats.values())
    return stats


async def relationships_by_status(
    session: AsyncSession,
    status: CustomerStatus,
    business_id: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[CustomerRelationshipORM], int]:
    """One page of relationships currently in `status`, most recently changed first, and the total count."""
    condition = _live(business_id) & (CustomerRelationshipORM.status == status)

    total = (await session.execute(
        select(func.count()).select_from(CustomerRelationshipORM).where(condition)
    )).scalar_one()

    result = await session.execute(
        select(CustomerRelationshipORM)
        .where(condition)
        .order_by(CustomerRelationshipORM.updated_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().unique().all()), total
