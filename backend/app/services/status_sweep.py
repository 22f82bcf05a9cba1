"""
Customer Status Sweep.

One pass over every live relationship (optionally scoped to one business),
evaluating each in turn through the coordinator. Processing is sequential; a
failing relationship is counted and skipped, never aborting the pass.
"""
import time
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.logging import get_logger, business_id_ctx
from backend.app.models.lifecycle_orm import CustomerStatus, CustomerRelationshipORM
from backend.app.services.status_coordinator import StatusUpdateCoordinator

logger = get_logger(__name__)


@dataclass
class SweepSummary:
    processed: int = 0
    updated: int = 0
    new: int = 0
    active: int = 0
    at_risk: int = 0
    lost: int = 0
    recovered: int = 0
    errors: int = 0

    def count_transition(self, status: CustomerStatus) -> None:
        key = CustomerStatus(status).value
        self.updated += 1
        setattr(self, key, getattr(self, key) + 1)

    def to_dict(self) -> dict:
        return asdict(self)


class StatusSweepService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        coordinator: StatusUpdateCoordinator,
    ):
        self.session_factory = session_factory
        self.coordinator = coordinator

    async def _relationship_keys(self, business_id: Optional[str]) -> list[tuple[str, str]]:
        query = (
            select(CustomerRelationshipORM.customer_id, CustomerRelationshipORM.business_id)
            .where(CustomerRelationshipORM.is_deleted.is_(False))
            .order_by(CustomerRelationshipORM.updated_at.asc())
        )
        if business_id:
            query = query.where(CustomerRelationshipORM.business_id == business_id)

        async with self.session_factory() as session:
            result = await session.execute(query)
            return [(row[0], row[1]) for row in result.all()]

    async def run(self, business_id: Optional[str] = None, now: Optional[datetime] = None) -> SweepSummary:
        """
        Evaluate all live relationships in scope.

        Per-status counters count transitions made during this sweep, not the
        population; use the statistics query for population counts.
        """
        scope = f"business {business_id}" if business_id else "all businesses"
        started = time.monotonic()
        summary = SweepSummary()

        keys = await self._relationship_keys(business_id)
        logger.info(f"Status sweep started for {scope} ({len(keys)} relationships)")

        for customer_id, rel_business_id in keys:
            summary.processed += 1
            token = business_id_ctx.set(rel_business_id)
            try:
                result = await self.coordinator.evaluate(customer_id, rel_business_id, now=now)
            except Exception as e:
                logger.error(
                    f"Error processing customer {customer_id} for business {rel_business_id}: {e}",
                    exc_info=True,
                )
                summary.errors += 1
                continue
            finally:
                business_id_ctx.reset(token)

            if result.error:
                summary.errors += 1
            elif result.changed:
                summary.count_transition(result.new_status)

        duration = time.monotonic() - started
        logger.info(
            f"Status sweep completed for {scope} in {duration:.2f}s",
            extra={"extra_data": {"summary": summary.to_dict(), "duration_s": round(duration, 2)}},
        )
        return summary
