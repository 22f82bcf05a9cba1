"""
Pydantic Schemas for the customer status API.
"""
from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field

from backend.app.models.lifecycle_orm import CustomerStatus


class StatusStatistics(BaseModel):
    total: int
    new: int
    active: int
    at_risk: int
    lost: int
    recovered: int


class SweepSummarySchema(BaseModel):
    processed: int
    updated: int
    new: int
    active: int
    at_risk: int
    lost: int
    recovered: int
    errors: int


class StatusChangeSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    relationship_id: str
    customer_id: str
    business_id: str
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    business_name: Optional[str] = None
    old_status: CustomerStatus
    new_status: CustomerStatus
    reason: str
    changed_at: datetime


class RelationshipSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    customer_id: str
    business_id: str
    status: CustomerStatus
    updated_at: datetime
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    business_name: Optional[str] = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class RelationshipPage(BaseModel):
    status: CustomerStatus
    label: str
    customers: List[RelationshipSchema]
    pagination: Pagination


class NotificationOutcome(BaseModel):
    success: bool
    skipped: bool = False
    status_code: Optional[int] = None
    error: Optional[str] = None


class ThresholdsSchema(BaseModel):
    at_risk_days: float
    lost_days: float
    average_interval_days: Optional[float] = None


class EvaluationSchema(BaseModel):
    customer_id: str
    business_id: str
    previous_status: Optional[CustomerStatus] = None
    new_status: Optional[CustomerStatus] = None
    changed: bool
    conflict: bool = False
    days_since_last_activity: Optional[int] = None
    activity_type: Optional[str] = None
    thresholds: Optional[ThresholdsSchema] = None
    reason: Optional[str] = None
    notification: Optional[NotificationOutcome] = None
    error: Optional[str] = None


class JobStatusSchema(BaseModel):
    scheduled: bool
    running: bool
    interval_seconds: float
    runs: int
    failures: int


class PaymentReceived(BaseModel):
    customer_id: str
    business_id: str
    paid_at: Optional[datetime] = Field(None, description="Defaults to the time of receipt")


class PaymentOutcomeSchema(BaseModel):
    payment_id: str
    promoted_to_active: bool
    evaluation: Optional[EvaluationSchema] = None
