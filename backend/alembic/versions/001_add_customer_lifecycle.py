"""Add customer lifecycle tables

Revision ID: 001_add_customer_lifecycle
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_add_customer_lifecycle'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

STATUS = sa.Enum('new', 'active', 'at_risk', 'lost', 'recovered', name='customer_status', native_enum=False, length=20)


def upgrade() -> None:
    """Create customers, businesses, relationships, activity and status log tables."""
    op.create_table(
        'customers',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('whatsapp_phone', sa.String(length=50), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_table(
        'businesses',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('business_type', sa.String(length=100), nullable=True),
        sa.Column('owner_phone', sa.String(length=50), nullable=True),
        sa.Column('subscription_status', sa.String(length=30), nullable=True),
        sa.Column('subscription_current_period_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_table(
        'customer_relationships',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('customer_id', sa.String(length=36), sa.ForeignKey('customers.id'), nullable=False),
        sa.Column('business_id', sa.String(length=36), sa.ForeignKey('businesses.id'), nullable=False),
        sa.Column('status', STATUS, nullable=False),
        sa.Column('is_deleted', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('customer_id', 'business_id', name='uq_customer_business')
    )
    op.create_index('ix_customer_relationships_customer_id', 'customer_relationships', ['customer_id'], unique=False)
    op.create_index('ix_customer_relationships_business_id', 'customer_relationships', ['business_id'], unique=False)
    op.create_index('ix_customer_relationships_status', 'customer_relationships', ['status'], unique=False)

    op.create_table(
        'payments',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('customer_id', sa.String(length=36), sa.ForeignKey('customers.id'), nullable=False),
        sa.Column('business_id', sa.String(length=36), sa.ForeignKey('businesses.id'), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_payments_pair_paid_at', 'payments', ['customer_id', 'business_id', 'paid_at'], unique=False)

    op.create_table(
        'appointments',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('customer_id', sa.String(length=36), sa.ForeignKey('customers.id'), nullable=False),
        sa.Column('business_id', sa.String(length=36), sa.ForeignKey('businesses.id'), nullable=False),
        sa.Column('service_name', sa.String(length=255), nullable=True),
        sa.Column('start_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_appointments_pair_updated_at', 'appointments', ['customer_id', 'business_id', 'updated_at'], unique=False)

    op.create_table(
        'customer_status_logs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('relationship_id', sa.String(length=36), sa.ForeignKey('customer_relationships.id'), nullable=False),
        sa.Column('customer_id', sa.String(length=36), nullable=False),
        sa.Column('business_id', sa.String(length=36), nullable=False),
        sa.Column('old_status', STATUS, nullable=False),
        sa.Column('new_status', STATUS, nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('changed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('trace_id', sa.String(length=128), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_customer_status_logs_relationship_id', 'customer_status_logs', ['relationship_id'], unique=False)
    op.create_index('ix_customer_status_logs_business_id', 'customer_status_logs', ['business_id'], unique=False)
    op.create_index('ix_customer_status_logs_changed_at', 'customer_status_logs', ['changed_at'], unique=False)
    op.create_index('ix_status_logs_pair_changed_at', 'customer_status_logs', ['customer_id', 'business_id', 'changed_at'], unique=False)


def downgrade() -> None:
    """Drop customer lifecycle tables."""
    op.drop_index('ix_status_logs_pair_changed_at', table_name='customer_status_logs')
    op.drop_index('ix_customer_status_logs_changed_at', table_name='customer_status_logs')
    op.drop_index('ix_customer_status_logs_business_id', table_name='customer_status_logs')
    op.drop_index('ix_customer_status_logs_relationship_id', table_name='customer_status_logs')
    op.drop_table('customer_status_logs')
    op.drop_index('ix_appointments_pair_updated_at', table_name='appointments')
    op.drop_table('appointments')
    op.drop_index('ix_payments_pair_paid_at', table_name='payments')
    op.drop_table('payments')
    op.drop_index('ix_customer_relationships_status', table_name='customer_relationships')
    op.drop_index('ix_customer_relationships_business_id', table_name='customer_relationships')
    op.drop_index('ix_customer_relationships_customer_id', table_name='customer_relationships')
    op.drop_table('customer_relationships')
    op.drop_table('businesses')
    op.drop_table('customers')
