"""
Audit Trail ORM Model for customer status transitions.

Append-only: rows are inserted once per realized transition and never updated.
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Index
from backend.app.core.database import Base
from backend.app.models.lifecycle_orm import status_enum


class CustomerStatusLogORM(Base):
    __tablename__ = "customer_status_logs"
    __table_args__ = (
        Index("ix_status_logs_pair_changed_at", "customer_id", "business_id", "changed_at"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    relationship_id = Column(String(36), ForeignKey("customer_relationships.id"), nullable=False, index=True)
    customer_id = Column(String(36), nullable=False)
    business_id = Column(String(36), nullable=False, index=True)

    old_status = Column(status_enum, nullable=False)
    new_status = Column(status_enum, nullable=False)
    reason = Column(Text, nullable=False)
    changed_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False, index=True)

    # Distributed tracing
    trace_id = Column(String(128), nullable=True)

    def __repr__(self):
        return f"<CustomerStatusLog {self.old_status}->{self.new_status} for {self.relationship_id}>"
