"""
Customer Status API Router.

Manual sweep trigger, single-relationship evaluation, and read-only queries
over the status change log and current relationship population.
"""
import logging
import math
from dataclasses import asdict
from typing import Optional, List, Dict

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.config import get_settings
from backend.app.core.database import get_db, get_session_factory
from backend.app.models.lifecycle_orm import CustomerStatus
from backend.app.schemas.customer_status import (
    StatusStatistics,
    SweepSummarySchema,
    StatusChangeSchema,
    RelationshipSchema,
    RelationshipPage,
    Pagination,
    EvaluationSchema,
    ThresholdsSchema,
    NotificationOutcome,
    JobStatusSchema,
)
from backend.app.services.notification_dispatcher import NotificationDispatcher, build_notification_dispatcher
from backend.app.services.status_coordinator import (
    StatusUpdateCoordinator,
    EvaluationResult,
    RelationshipNotFoundError,
)
from backend.app.services.status_log import StatusChangeLog
from backend.app.services.status_queries import status_statistics, relationships_by_status
from backend.app.services.status_sweep import StatusSweepService
from backend.app.services.threshold_calculator import ThresholdCalculator

logger = logging.getLogger(__name__)
router = APIRouter()


def get_notification_dispatcher() -> NotificationDispatcher:
    return build_notification_dispatcher(get_settings())


def get_status_coordinator(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> StatusUpdateCoordinator:
    settings = get_settings()
    return StatusUpdateCoordinator(
        session_factory,
        dispatcher,
        threshold_calculator=ThresholdCalculator(settings.at_risk_default_days, settings.lost_default_days),
    )


def to_evaluation_schema(result: EvaluationResult) -> EvaluationSchema:
    return EvaluationSchema(
        customer_id=result.customer_id,
        business_id=result.business_id,
        previous_status=result.previous_status,
        new_status=result.new_status,
        changed=result.changed,
        conflict=result.conflict,
        days_since_last_activity=result.days_since_last_activity,
        activity_type=result.activity_type,
        thresholds=ThresholdsSchema(**asdict(result.thresholds)) if result.thresholds else None,
        reason=result.reason,
        notification=NotificationOutcome(**result.notification.model_dump()) if result.notification else None,
        error=result.error,
    )


@router.get("/statistics", response_model=StatusStatistics)
async def get_status_statistics(
    business_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    """Current population counts by status."""
    return StatusStatistics(**await status_statistics(db, business_id))


@router.get("/status/{status}", response_model=RelationshipPage)
async def get_customers_by_status(
    status: CustomerStatus,
    business_id: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Relationships currently in a given status."""
    relationships, total = await relationships_by_status(db, status, business_id, page, limit)
    customers = [
        RelationshipSchema(
            id=rel.id,
            customer_id=rel.customer_id,
            business_id=rel.business_id,
            status=rel.status,
            updated_at=rel.updated_at,
            customer_name=rel.customer.full_name if rel.customer else None,
            customer_phone=rel.customer.phone if rel.customer else None,
            business_name=rel.business.name if rel.business else None,
        )
        for rel in relationships
    ]
    return RelationshipPage(
        status=status,
        label=status.label,
        customers=customers,
        pagination=Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit)),
    )


@router.get("/changes/recent", response_model=List[StatusChangeSchema])
async def get_recent_status_changes(
    hours: Optional[float] = Query(None, gt=0),
    business_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    """Status changes within the last N hours, newest first."""
    window = hours or get_settings().recent_changes_default_hours
    changes = await StatusChangeLog(db).recent(hours=window, business_id=business_id)
    return [StatusChangeSchema.model_validate(change) for change in changes]


@router.get("/history/{customer_id}/{business_id}", response_model=List[StatusChangeSchema])
async def get_status_history(
    customer_id: str,
    business_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Full status history of one relationship, newest first."""
    changes = await StatusChangeLog(db).history(customer_id, business_id)
    return [StatusChangeSchema.model_validate(change) for change in changes]


@router.post("/evaluate/{customer_id}/{business_id}", response_model=EvaluationSchema)
async def evaluate_customer_status(
    customer_id: str,
    business_id: str,
    coordinator: StatusUpdateCoordinator = Depends(get_status_coordinator),
):
    """Re-evaluate one relationship now."""
    try:
        result = await coordinator.evaluate(customer_id, business_id)
    except RelationshipNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return to_evaluation_schema(result)


@router.post("/sweep", response_model=SweepSummarySchema)
async def trigger_status_sweep(
    business_id: Optional[str] = None,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    coordinator: StatusUpdateCoordinator = Depends(get_status_coordinator),
):
    """Run a full status sweep immediately, optionally scoped to one business."""
    summary = await StatusSweepService(session_factory, coordinator).run(business_id=business_id)
    logger.info(f"Manual status sweep finished: {summary.to_dict()}")
    return SweepSummarySchema(**summary.to_dict())


@router.get("/jobs", response_model=Dict[str, JobStatusSchema])
async def get_job_status(request: Request):
    """State of the background status jobs."""
    scheduler = getattr(request.app.state, "scheduler", None)
    return scheduler.job_status() if scheduler else {}
