"""Baseline migration - managers, properties, inquiry workflow and scheduling

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-19

Creates every table of the inquiry qualification and scheduling engine.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


JSONVariant = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamps(updated: bool = True) -> list[sa.Column]:
    columns = [sa.Column('created_at', sa.DateTime(timezone=True), nullable=False)]
    if updated:
        columns.append(sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False))
    return columns


def upgrade() -> None:
    """Create engine tables."""

    # ==========================================================================
    # Managers and properties
    # ==========================================================================
    op.create_table(
        'property_managers',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('timezone', sa.String(50), nullable=False),
        sa.Column('token_version', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(updated=False),
    )

    op.create_table(
        'properties',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'manager_id', sa.Uuid(),
            sa.ForeignKey('property_managers.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('address', sa.String(500), nullable=False),
        sa.Column('rent_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('bedrooms', sa.Integer(), nullable=True),
        sa.Column('bathrooms', sa.Numeric(3, 1), nullable=True),
        sa.Column('is_test_mode', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_archived', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index('idx_properties_manager', 'properties', ['manager_id', 'is_archived'])

    # ==========================================================================
    # Questions and criteria
    # ==========================================================================
    op.create_table(
        'questions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'property_id', sa.Uuid(),
            sa.ForeignKey('properties.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('response_type', sa.String(30), nullable=False),
        sa.Column('options', JSONVariant, nullable=True),
        sa.Column('order', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(updated=False),
    )
    op.create_index('idx_questions_property_order', 'questions', ['property_id', 'order'])

    op.create_table(
        'qualification_criteria',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'property_id', sa.Uuid(),
            sa.ForeignKey('properties.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column(
            'question_id', sa.Uuid(),
            sa.ForeignKey('questions.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('operator', sa.String(30), nullable=False),
        sa.Column('expected_value', JSONVariant, nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(updated=False),
    )
    op.create_index('idx_criteria_property', 'qualification_criteria', ['property_id'])

    # ==========================================================================
    # Inquiries
    # ==========================================================================
    op.create_table(
        'inquiries',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'property_id', sa.Uuid(),
            sa.ForeignKey('properties.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('platform_id', sa.String(100), nullable=False),
        sa.Column('external_inquiry_id', sa.String(255), nullable=False),
        sa.Column('prospective_tenant_id', sa.String(255), nullable=False),
        sa.Column('prospective_tenant_name', sa.String(255), nullable=True),
        sa.Column('status', sa.String(40), nullable=False, server_default='new'),
        sa.Column('qualification_result', JSONVariant, nullable=True),
        sa.Column('source_type', sa.String(20), nullable=False, server_default='manual'),
        sa.Column('source_metadata', JSONVariant, nullable=True),
        sa.Column('question_snapshot', JSONVariant, nullable=True),
        sa.Column('offer_generation', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
    )
    op.create_index('idx_inquiries_property_status', 'inquiries', ['property_id', 'status'])
    op.create_index('idx_inquiries_created', 'inquiries', ['created_at'])

    op.create_table(
        'inquiry_responses',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'inquiry_id', sa.Uuid(),
            sa.ForeignKey('inquiries.id', ondelete='CASCADE'), nullable=False,
        ),
        # Snapshot question ids; the live question may have been deleted since
        sa.Column('question_id', sa.Uuid(), nullable=False),
        sa.Column('value', JSONVariant, nullable=True),
        *_timestamps(updated=False),
        sa.UniqueConstraint('inquiry_id', 'question_id', name='uq_inquiry_response_question'),
    )

    op.create_table(
        'inquiry_notes',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'inquiry_id', sa.Uuid(),
            sa.ForeignKey('inquiries.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('note', sa.Text(), nullable=False),
        sa.Column(
            'created_by', sa.Uuid(),
            sa.ForeignKey('property_managers.id', ondelete='SET NULL'), nullable=True,
        ),
        *_timestamps(updated=False),
    )
    op.create_index('idx_inquiry_notes_inquiry', 'inquiry_notes', ['inquiry_id'])

    op.create_table(
        'workflow_events',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'inquiry_id', sa.Uuid(),
            sa.ForeignKey('inquiries.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('event_type', sa.String(30), nullable=False),
        sa.Column('from_status', sa.String(40), nullable=True),
        sa.Column('to_status', sa.String(40), nullable=True),
        sa.Column('actor', sa.String(20), nullable=False),
        sa.Column('actor_id', sa.Uuid(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('metadata', JSONVariant, nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('idx_workflow_events_inquiry', 'workflow_events', ['inquiry_id', 'created_at'])

    op.create_table(
        'questionnaire_tokens',
        sa.Column('token', sa.String(64), primary_key=True),
        sa.Column(
            'inquiry_id', sa.Uuid(),
            sa.ForeignKey('inquiries.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('idx_questionnaire_tokens_inquiry', 'questionnaire_tokens', ['inquiry_id'])

    # ==========================================================================
    # Scheduling
    # ==========================================================================
    op.create_table(
        'availability_schedules',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'manager_id', sa.Uuid(),
            sa.ForeignKey('property_managers.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('schedule_type', sa.String(20), nullable=False),
        sa.Column('recurring_weekly', JSONVariant, nullable=False),
        sa.Column('blocked_dates', JSONVariant, nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('manager_id', 'schedule_type', name='uq_schedule_manager_type'),
    )

    op.create_table(
        'appointments',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'inquiry_id', sa.Uuid(),
            sa.ForeignKey('inquiries.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column(
            'manager_id', sa.Uuid(),
            sa.ForeignKey('property_managers.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('appointment_type', sa.String(20), nullable=False),
        sa.Column('scheduled_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='scheduled'),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('idx_appointments_manager_time', 'appointments', ['manager_id', 'scheduled_time'])
    op.create_index('idx_appointments_inquiry', 'appointments', ['inquiry_id'])
    # At most one scheduled appointment per manager, type and start time
    op.create_index(
        'uq_appointments_manager_type_time_scheduled',
        'appointments',
        ['manager_id', 'appointment_type', 'scheduled_time'],
        unique=True,
        postgresql_where=sa.text("status = 'scheduled'"),
        sqlite_where=sa.text("status = 'scheduled'"),
    )

    op.create_table(
        'booking_tokens',
        sa.Column('token', sa.String(64), primary_key=True),
        sa.Column(
            'inquiry_id', sa.Uuid(),
            sa.ForeignKey('inquiries.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column(
            'manager_id', sa.Uuid(),
            sa.ForeignKey('property_managers.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('slot_date', sa.Date(), nullable=False),
        sa.Column('slot_start_time', sa.String(5), nullable=False),
        sa.Column('slot_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('appointment_type', sa.String(20), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('generation', sa.Integer(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('consumed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('invalidated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            'appointment_id', sa.Uuid(),
            sa.ForeignKey('appointments.id', ondelete='SET NULL'), nullable=True,
        ),
        *_timestamps(updated=False),
    )
    op.create_index('idx_booking_tokens_inquiry', 'booking_tokens', ['inquiry_id', 'generation'])
    op.create_index('idx_booking_tokens_expires', 'booking_tokens', ['expires_at'])


def downgrade() -> None:
    """Drop engine tables in dependency order."""
    for table in (
        'booking_tokens',
        'appointments',
        'availability_schedules',
        'questionnaire_tokens',
        'workflow_events',
        'inquiry_notes',
        'inquiry_responses',
        'inquiries',
        'qualification_criteria',
        'questions',
        'properties',
        'property_managers',
    ):
        op.drop_table(table)
