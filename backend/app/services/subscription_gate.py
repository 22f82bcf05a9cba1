"""
Subscription gate for outbound notifications.

Status changes are always recorded; a business without an active subscription
simply does not get messages sent on its behalf.
"""
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.logging import get_logger
from backend.app.models.lifecycle_orm import BusinessORM
from backend.app.services.threshold_calculator import as_utc

logger = get_logger(__name__)

ACTIVE_SUBSCRIPTION_STATUSES = frozenset({"active", "trialing"})


class SubscriptionGate(ABC):
    @abstractmethod
    async def has_active_subscription(self, business_id: str, session: AsyncSession) -> bool:
        ...


class BusinessSubscriptionGate(SubscriptionGate):
    """Reads the subscription state mirrored onto the business row by billing."""

    def __init__(self, now: Optional[datetime] = None):
        self._now = now

    async def has_active_subscription(self, business_id: str, session: AsyncSession) -> bool:
        try:
            business = await session.get(BusinessORM, business_id)
        except Exception as e:
            logger.warning(f"Could not check subscription for business {business_id}: {e}")
            return False

        if business is None:
            logger.warning(f"Business {business_id} not found for subscription check")
            return False

        status = (business.subscription_status or "").lower()
        if status not in ACTIVE_SUBSCRIPTION_STATUSES:
            return False

        period_end = business.subscription_current_period_end
        if period_end is not None:
            now = self._now or datetime.now(timezone.utc)
            if as_utc(period_end) < now:
                return False

        return True


class AllowAllSubscriptionGate(SubscriptionGate):
    async def has_active_subscription(self, business_id: str, session: AsyncSession) -> bool:
        return True
