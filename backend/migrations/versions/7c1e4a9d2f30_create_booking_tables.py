"""create_booking_tables

Revision ID: 7c1e4a9d2f30
Revises:
Create Date: 2026-10-12 10:14:37.218904

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '7c1e4a9d2f30'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


user_role = sa.Enum('worker', 'employer', 'customer', name='user_role')
job_status = sa.Enum('open', 'closed', name='job_status')
booking_status = sa.Enum(
    'pending', 'negotiating', 'accepted', 'confirmed', 'in_progress', 'completed', 'cancelled',
    name='booking_status',
)
negotiation_message_type = sa.Enum(
    'message', 'price_offer', 'time_change', 'acceptance', 'rejection',
    name='negotiation_message_type',
)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone_number', sa.String(length=20), nullable=True),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('role', user_role, nullable=False),
        sa.Column('location', sa.String(length=255), nullable=True, comment="Free text, usually 'City, State'"),
        sa.Column('skills', sa.JSON(), nullable=False),
        sa.Column('experience_years', sa.Integer(), nullable=False),
        sa.Column('bio', sa.String(length=1000), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
    op.create_index(op.f('ix_users_role'), 'users', ['role'], unique=False)

    op.create_table(
        'service_categories',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('icon', sa.String(length=16), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )

    op.create_table(
        'services',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('category_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.String(length=1000), nullable=True),
        sa.Column('base_price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['category_id'], ['service_categories.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_services_category_id'), 'services', ['category_id'], unique=False)
    op.create_index(op.f('ix_services_name'), 'services', ['name'], unique=False)

    op.create_table(
        'jobs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('employer_id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.String(length=4000), nullable=True),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('pay', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('worker_type', sa.String(length=100), nullable=True, comment='Trade requested, e.g. plumber, electrician'),
        sa.Column('status', job_status, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['employer_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_jobs_employer_id'), 'jobs', ['employer_id'], unique=False)
    op.create_index(op.f('ix_jobs_status'), 'jobs', ['status'], unique=False)
    op.create_index(op.f('ix_jobs_created_at'), 'jobs', ['created_at'], unique=False)

    op.create_table(
        'service_bookings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('customer_id', sa.Uuid(), nullable=False),
        sa.Column('worker_id', sa.Uuid(), nullable=False),
        sa.Column('service_id', sa.Uuid(), nullable=False),
        sa.Column('description', sa.String(length=2000), nullable=False),
        sa.Column('location', sa.String(length=255), nullable=False),
        sa.Column('preferred_date', sa.Date(), nullable=False),
        sa.Column('preferred_time', sa.Time(), nullable=False),
        sa.Column('special_instructions', sa.String(length=2000), nullable=True),
        sa.Column('customer_phone', sa.String(length=20), nullable=False),
        sa.Column('offered_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('status', booking_status, nullable=False),
        sa.Column('final_price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('scheduled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('offered_price > 0', name='booking_offered_price_positive'),
        sa.CheckConstraint('customer_id <> worker_id', name='booking_distinct_parties'),
        sa.ForeignKeyConstraint(['customer_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['worker_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['service_id'], ['services.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_service_bookings_customer_id'), 'service_bookings', ['customer_id'], unique=False)
    op.create_index(op.f('ix_service_bookings_worker_id'), 'service_bookings', ['worker_id'], unique=False)
    op.create_index(op.f('ix_service_bookings_service_id'), 'service_bookings', ['service_id'], unique=False)
    op.create_index(op.f('ix_service_bookings_status'), 'service_bookings', ['status'], unique=False)

    op.create_table(
        'booking_negotiations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=False),
        sa.Column('sender_id', sa.Uuid(), nullable=False),
        sa.Column('message_type', negotiation_message_type, nullable=False),
        sa.Column('proposed_price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('proposed_date', sa.Date(), nullable=True),
        sa.Column('proposed_time', sa.Time(), nullable=True),
        sa.Column('message', sa.String(length=2000), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['booking_id'], ['service_bookings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['sender_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_booking_negotiations_booking_created',
        'booking_negotiations',
        ['booking_id', 'created_at', 'id'],
        unique=False,
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_booking_negotiations_booking_created', table_name='booking_negotiations')
    op.drop_table('booking_negotiations')
    op.drop_table('service_bookings')
    op.drop_table('jobs')
    op.drop_table('services')
    op.drop_table('service_categories')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_type in (negotiation_message_type, booking_status, job_status, user_role):
        enum_type.drop(bind, checkfirst=True)
