"""Models package."""

from backend.app.models.lifecycle_orm import (
    CustomerStatus,
    NOTIFIABLE_STATUSES,
    CustomerORM,
    BusinessORM,
    CustomerRelationshipORM,
    PaymentORM,
    AppointmentORM,
)
from backend.app.models.status_log_orm import CustomerStatusLogORM

__all__ = [
    "CustomerStatus",
    "NOTIFIABLE_STATUSES",
    "CustomerORM",
    "BusinessORM",
    "CustomerRelationshipORM",
    "PaymentORM",
    "AppointmentORM",
    "CustomerStatusLogORM",
]
