"""
ORM Models for the customer lifecycle engine.

A customer is owned independently of any business; the (customer, business)
pairing is the unit whose lifecycle status is tracked.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import Column, String, DateTime, Boolean, Enum, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import relationship

from backend.app.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CustomerStatus(str, PyEnum):
    NEW = "new"
    ACTIVE = "active"
    AT_RISK = "at_risk"
    LOST = "lost"
    RECOVERED = "recovered"

    @property
    def label(self) -> str:
        """Display label used in dashboards and listings."""
        return _STATUS_LABELS[self]


_STATUS_LABELS = {
    CustomerStatus.NEW: "New",
    CustomerStatus.ACTIVE: "Active",
    CustomerStatus.AT_RISK: "Risk",
    CustomerStatus.LOST: "Lost",
    CustomerStatus.RECOVERED: "Recovered",
}

# Statuses that produce an outbound notification when entered
NOTIFIABLE_STATUSES = frozenset({CustomerStatus.AT_RISK, CustomerStatus.LOST, CustomerStatus.RECOVERED})

status_enum = Enum(
    CustomerStatus,
    name="customer_status",
    native_enum=False,
    length=20,
    values_callable=lambda members: [m.value for m in members],
)


class CustomerORM(Base):
    __tablename__ = "customers"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    full_name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    whatsapp_phone = Column(String(50), nullable=True) # defaults to phone when unset
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def __repr__(self):
        return f"<Customer {self.full_name}>"


class BusinessORM(Base):
    """The tenant. Subscription fields are mirrored from billing."""
    __tablename__ = "businesses"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    business_type = Column(String(100), nullable=True)
    owner_phone = Column(String(50), nullable=True)
    subscription_status = Column(String(30), nullable=True) # active | trialing | past_due | canceled ...
    subscription_current_period_end = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def __repr__(self):
        return f"<Business {self.name}>"


class CustomerRelationshipORM(Base):
    __tablename__ = "customer_relationships"
    __table_args__ = (
        UniqueConstraint("customer_id", "business_id", name="uq_customer_business"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=False, index=True)
    business_id = Column(String(36), ForeignKey("businesses.id"), nullable=False, index=True)
    status = Column(status_enum, default=CustomerStatus.NEW, nullable=False, index=True)
    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    customer = relationship("CustomerORM", lazy="joined")
    business = relationship("BusinessORM", lazy="joined")

    def __repr__(self):
        return f"<CustomerRelationship {self.customer_id}@{self.business_id} status={self.status}>"


class PaymentORM(Base):
    """Payment webhook record. Only `success` rows count as lifecycle activity."""
    __tablename__ = "payments"
    __table_args__ = (
        Index("ix_payments_pair_paid_at", "customer_id", "business_id", "paid_at"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=False)
    business_id = Column(String(36), ForeignKey("businesses.id"), nullable=False)
    status = Column(String(20), default="success", nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


class AppointmentORM(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        Index("ix_appointments_pair_updated_at", "customer_id", "business_id", "updated_at"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=False)
    business_id = Column(String(36), ForeignKey("businesses.id"), nullable=False)
    service_name = Column(String(255), nullable=True)
    start_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
