"""Create employees, schedules and timesheets tables

Revision ID: 001_timesheets
Revises: None
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

revision = '001_timesheets'
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_DRIVE = sa.text("type = 'drive_time' AND clock_out IS NULL")


def upgrade():
    op.create_table(
        'employees',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('first_name', sa.String(), nullable=True),
        sa.Column('last_name', sa.String(), nullable=True),
        sa.Column('role', sa.String(), nullable=False, server_default='field'),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        sa.Column('classification', sa.String(), nullable=True),
        sa.Column('company_position', sa.String(), nullable=True),
        sa.Column('hourly_rate_site', sa.Numeric(8, 2), nullable=True),
        sa.Column('hourly_rate_drive', sa.Numeric(8, 2), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_employees_id', 'employees', ['id'])
    op.create_index('ix_employees_email', 'employees', ['email'], unique=True)

    op.create_table(
        'schedules',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('from_date', sa.DateTime(), nullable=False),
        sa.Column('to_date', sa.DateTime(), nullable=True),
        sa.Column('customer_name', sa.String(), nullable=True),
        sa.Column('estimate', sa.String(), nullable=True),
        sa.Column('job_location', sa.String(), nullable=True),
        sa.Column('project_manager', sa.String(), nullable=True),
        sa.Column('foreman_name', sa.String(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('certified_payroll', sa.Boolean(), server_default=sa.false()),
        sa.Column('per_diem', sa.Boolean(), server_default=sa.false()),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    for column in ('from_date', 'estimate', 'project_manager', 'foreman_name'):
        op.create_index(f'ix_schedules_{column}', 'schedules', [column])

    op.create_table(
        'timesheets',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('schedule_id', sa.String(), sa.ForeignKey('schedules.id', ondelete='CASCADE'), nullable=False),
        sa.Column('employee', sa.String(), nullable=False),
        sa.Column('type', sa.String(), nullable=False, server_default='site_time'),
        sa.Column('clock_in', sa.DateTime(), nullable=False),
        sa.Column('clock_out', sa.DateTime(), nullable=True),
        sa.Column('lunch_start', sa.DateTime(), nullable=True),
        sa.Column('lunch_end', sa.DateTime(), nullable=True),
        sa.Column('location_in', sa.String(), nullable=True),
        sa.Column('location_out', sa.String(), nullable=True),
        sa.Column('distance', sa.Float(), nullable=True),
        sa.Column('hours', sa.Float(), nullable=True),
        sa.Column('manual_distance', sa.Float(), nullable=True),
        sa.Column('manual_duration', sa.Float(), nullable=True),
        sa.Column('washout_qty', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('shop_qty', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('hourly_rate_site', sa.Numeric(8, 2), nullable=True),
        sa.Column('hourly_rate_drive', sa.Numeric(8, 2), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='Pending'),
        sa.Column('comments', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_timesheets_schedule_id', 'timesheets', ['schedule_id'])
    op.create_index('ix_timesheets_employee', 'timesheets', ['employee'])
    op.create_index('ix_timesheets_employee_clock_in', 'timesheets', ['employee', 'clock_in'])

    # One running drive time per employee
    op.create_index(
        'uq_timesheets_active_drive_time',
        'timesheets',
        ['employee'],
        unique=True,
        postgresql_where=ACTIVE_DRIVE,
    )


def downgrade():
    op.drop_index('uq_timesheets_active_drive_time', table_name='timesheets')
    op.drop_table('timesheets')
    op.drop_table('schedules')
    op.drop_table('employees')
