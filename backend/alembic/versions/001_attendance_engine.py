"""Create employees, outlets and attendances tables

Revision ID: 001_attendance_engine
Revises: None
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

revision = '001_attendance_engine'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'employees',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_code', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('department', sa.String(), nullable=True),
        sa.Column('photo', sa.Text(), nullable=True),
        # JSON array of floats
        sa.Column('face_descriptor', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_employees_id', 'employees', ['id'])
    op.create_index('ix_employees_user_code', 'employees', ['user_code'], unique=True)

    op.create_table(
        'outlets',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('address', sa.String(), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=False),
        sa.Column('longitude', sa.Float(), nullable=False),
        sa.Column('radius', sa.Float(), nullable=False, server_default='100'),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_outlets_id', 'outlets', ['id'])

    op.create_table(
        'attendances',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id'), nullable=False),
        sa.Column('clock_in_time', sa.DateTime(), nullable=False),
        sa.Column('clock_out_time', sa.DateTime(), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='ON_TIME'),
        sa.Column('late_duration', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('work_duration', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('location_name', sa.String(), nullable=True),
        sa.Column('outlet_id', sa.Integer(), sa.ForeignKey('outlets.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_attendances_id', 'attendances', ['id'])
    op.create_index('ix_attendances_employee_id', 'attendances', ['employee_id'])
    op.create_index('ix_attendances_clock_in_time', 'attendances', ['clock_in_time'])


def downgrade():
    op.drop_table('attendances')
    op.drop_table('outlets')
    op.drop_table('employees')
