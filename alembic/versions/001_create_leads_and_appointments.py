"""Create leads, calendar, timeslot and appointment tables

Revision ID: 001_create_leads_and_appointments
Revises:
Create Date: 2026-10-16

Note: occupied_count is only ever changed by conditional UPDATEs; the
check constraints are the last line against overbooking.
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_create_leads_and_appointments'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), onupdate=sa.func.now()),
    ]


def upgrade():
    """Create reconciliation tables."""
    op.create_table(
        'leads',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('phone_number', sa.String(20), nullable=False),
        sa.Column('phone_number_2', sa.String(20), server_default=''),
        sa.Column('phone_number_3', sa.String(20), server_default=''),
        sa.Column('full_name', sa.String(255), server_default=''),
        sa.Column('email', sa.String(255), server_default=''),
        sa.Column('status', sa.String(50), nullable=False, server_default='new'),
        sa.Column('source', sa.String(100), server_default='System'),
        sa.Column('lead_type', sa.String(50), server_default='new'),
        sa.Column('assigned_to', sa.String(256)),
        sa.Column('follow_up_date', sa.DateTime(timezone=True)),
        sa.Column('amount', sa.String(50), server_default=''),
        sa.Column('employment_status', sa.String(50), server_default=''),
        sa.Column('loan_purpose', sa.String(100), server_default=''),
        sa.Column('eligibility_checked', sa.Boolean(), server_default=sa.false()),
        sa.Column('eligibility_status', sa.String(50), server_default=''),
        sa.Column('eligibility_notes', sa.Text()),
        sa.Column('loan_status', sa.String(50)),
        sa.Column('loan_notes', sa.Text()),
        sa.Column('is_deleted', sa.Boolean(), server_default=sa.false()),
        *_timestamps(),
        sa.Column('created_by', sa.String(256)),
        sa.Column('updated_by', sa.String(256)),
    )
    op.create_index('ix_leads_phone_number', 'leads', ['phone_number'])
    op.create_index('ix_leads_status', 'leads', ['status'])
    op.create_index('ix_leads_assigned_to', 'leads', ['assigned_to'])

    op.create_table(
        'calendar_settings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('working_days', sa.JSON()),
        sa.Column('daily_start_time', sa.Time()),
        sa.Column('daily_end_time', sa.Time()),
        sa.Column('slot_duration_minutes', sa.Integer(), server_default='60'),
        sa.Column('default_max_capacity', sa.Integer(), server_default='1'),
        *_timestamps(),
    )

    op.create_table(
        'calendar_exceptions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('is_closed', sa.Boolean(), server_default=sa.false()),
        sa.Column('reason', sa.Text()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_calendar_exceptions_date', 'calendar_exceptions', ['date'])

    op.create_table(
        'timeslots',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('max_capacity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('occupied_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('calendar_setting_id', sa.Integer(), sa.ForeignKey('calendar_settings.id')),
        sa.Column('is_disabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint('occupied_count >= 0', name='ck_timeslot_occupied_non_negative'),
        sa.CheckConstraint('occupied_count <= max_capacity', name='ck_timeslot_within_capacity'),
        sa.UniqueConstraint('date', 'start_time', 'calendar_setting_id', name='uq_timeslot_date_start'),
    )
    op.create_index('ix_timeslots_date', 'timeslots', ['date'])

    op.create_table(
        'appointments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('lead_id', sa.Integer(), sa.ForeignKey('leads.id', ondelete='CASCADE'), nullable=False),
        sa.Column('agent_id', sa.String(256), nullable=False),
        sa.Column('status', sa.String(50), nullable=False, server_default='upcoming'),
        sa.Column('loan_status', sa.String(50)),
        sa.Column('loan_notes', sa.Text()),
        sa.Column('notes', sa.Text()),
        sa.Column('lead_source', sa.String(100), server_default='SEO'),
        sa.Column('start_datetime', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_datetime', sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.Column('created_by', sa.String(256)),
        sa.Column('updated_by', sa.String(256)),
    )
    op.create_index('ix_appointments_lead_id', 'appointments', ['lead_id'])
    op.create_index('ix_appointments_agent_id', 'appointments', ['agent_id'])
    op.create_index('ix_appointments_status', 'appointments', ['status'])
    op.create_index('ix_appointments_start_datetime', 'appointments', ['start_datetime'])
    # At most one upcoming appointment per lead
    op.execute(
        "CREATE UNIQUE INDEX uq_appointments_one_upcoming_per_lead "
        "ON appointments (lead_id) WHERE status = 'upcoming'"
    )

    op.create_table(
        'appointment_timeslots',
        sa.Column('appointment_id', sa.Integer(), sa.ForeignKey('appointments.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('timeslot_id', sa.Integer(), sa.ForeignKey('timeslots.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('primary', sa.Boolean(), server_default=sa.true()),
    )
    op.create_index('ix_appointment_timeslots_timeslot_id', 'appointment_timeslots', ['timeslot_id'])


def downgrade():
    """Drop reconciliation tables."""
    op.drop_table('appointment_timeslots')
    op.execute("DROP INDEX IF EXISTS uq_appointments_one_upcoming_per_lead")
    op.drop_table('appointments')
    op.drop_table('timeslots')
    op.drop_table('calendar_exceptions')
    op.drop_table('calendar_settings')
    op.drop_table('leads')
