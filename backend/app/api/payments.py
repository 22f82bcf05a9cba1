"""
Payment receipt endpoint.

Records a successful payment and re-evaluates the customer's lifecycle status
inline, ahead of the next scheduled sweep.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.api.customer_status import get_status_coordinator, to_evaluation_schema
from backend.app.core.database import get_session_factory
from backend.app.schemas.customer_status import PaymentReceived, PaymentOutcomeSchema
from backend.app.services.payment_hook import PaymentHook
from backend.app.services.status_coordinator import (
    StatusUpdateCoordinator,
    RelationshipNotFoundError,
    FuturePaymentError,
)

router = APIRouter()


@router.post("/success", response_model=PaymentOutcomeSchema, status_code=status.HTTP_201_CREATED)
async def payment_succeeded(
    payload: PaymentReceived,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    coordinator: StatusUpdateCoordinator = Depends(get_status_coordinator),
):
    hook = PaymentHook(session_factory, coordinator)
    try:
        outcome = await hook.record_successful_payment(
            payload.customer_id, payload.business_id, paid_at=payload.paid_at
        )
    except RelationshipNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except FuturePaymentError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return PaymentOutcomeSchema(
        payment_id=outcome.payment_id,
        promoted_to_active=outcome.promoted_to_active,
        evaluation=to_evaluation_schema(outcome.evaluation) if outcome.evaluation else None,
    )
