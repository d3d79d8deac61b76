"""Add borrowers and reloan appointments

Revision ID: 002_add_borrowers
Revises: 001_create_leads_and_appointments
Create Date: 2026-10-16
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '002_add_borrowers'
down_revision = '001_create_leads_and_appointments'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'borrowers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('phone_number', sa.String(20), nullable=False),
        sa.Column('phone_number_2', sa.String(20), server_default=''),
        sa.Column('phone_number_3', sa.String(20), server_default=''),
        sa.Column('email', sa.String(255), server_default=''),
        sa.Column('status', sa.String(50), nullable=False, server_default='new'),
        sa.Column('source', sa.String(50), server_default=''),
        sa.Column('assigned_to', sa.String(256)),
        sa.Column('loan_status', sa.String(50)),
        sa.Column('loan_notes', sa.Text()),
        sa.Column('is_deleted', sa.Boolean(), server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), onupdate=sa.func.now()),
        sa.Column('updated_by', sa.String(256)),
    )
    op.create_index('ix_borrowers_phone_number', 'borrowers', ['phone_number'])
    op.create_index('ix_borrowers_status', 'borrowers', ['status'])

    op.create_table(
        'borrower_appointments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('borrower_id', sa.Integer(), sa.ForeignKey('borrowers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('agent_id', sa.String(256), nullable=False),
        sa.Column('status', sa.String(50), nullable=False, server_default='upcoming'),
        sa.Column('appointment_type', sa.String(50), server_default='reloan_consultation'),
        sa.Column('loan_status', sa.String(50)),
        sa.Column('loan_notes', sa.Text()),
        sa.Column('notes', sa.Text()),
        sa.Column('start_datetime', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_datetime', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), onupdate=sa.func.now()),
        sa.Column('updated_by', sa.String(256)),
    )
    op.create_index('ix_borrower_appointments_borrower_id', 'borrower_appointments', ['borrower_id'])
    op.create_index('ix_borrower_appointments_status', 'borrower_appointments', ['status'])
    op.create_index('ix_borrower_appointments_start_datetime', 'borrower_appointments', ['start_datetime'])

    op.create_table(
        'borrower_appointment_timeslots',
        sa.Column(
            'borrower_appointment_id', sa.Integer(),
            sa.ForeignKey('borrower_appointments.id', ondelete='CASCADE'), primary_key=True,
        ),
        sa.Column('timeslot_id', sa.Integer(), sa.ForeignKey('timeslots.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('primary', sa.Boolean(), server_default=sa.true()),
    )


def downgrade():
    op.drop_table('borrower_appointment_timeslots')
    op.drop_table('borrower_appointments')
    op.drop_table('borrowers')
