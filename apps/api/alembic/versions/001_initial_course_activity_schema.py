"""initial course activity schema

Revision ID: 001
Revises:
Create Date: 2025-02-03 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TASK_FIELDS = (
    'formative_one_grading',
    'formative_two_grading',
    'summative_grading',
    'course_moderation',
    'intranet_sync',
    'grade_book_status',
)


def upgrade() -> None:
    op.create_table(
        'user_account',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('email', sa.Text(), nullable=False),
        sa.Column('first_name', sa.Text(), nullable=False),
        sa.Column('last_name', sa.Text(), nullable=False),
        sa.Column('role', sa.Text(), server_default='student', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('email'),
        sa.CheckConstraint("role IN ('manager', 'facilitator', 'student')", name='ck_user_account_role'),
    )

    op.create_table(
        'manager',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('department', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['user_account.id'], ),
        sa.UniqueConstraint('user_id'),
    )

    op.create_table(
        'facilitator',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('employee_id', sa.Text(), nullable=True),
        sa.Column('department', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['user_account.id'], ),
        sa.UniqueConstraint('user_id'),
        sa.UniqueConstraint('employee_id'),
    )

    op.create_table(
        'course_module',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('code', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.UniqueConstraint('code'),
    )

    op.create_table(
        'cohort',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.UniqueConstraint('name'),
    )

    op.create_table(
        'course_offering',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('module_id', sa.Uuid(), nullable=False),
        sa.Column('facilitator_id', sa.Uuid(), nullable=False),
        sa.Column('cohort_id', sa.Uuid(), nullable=True),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('intake_period', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), server_default='planned', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['module_id'], ['course_module.id'], ),
        sa.ForeignKeyConstraint(['facilitator_id'], ['facilitator.id'], ),
        sa.ForeignKeyConstraint(['cohort_id'], ['cohort.id'], ),
        sa.ForeignKeyConstraint(['created_by'], ['manager.id'], ),
    )
    op.create_index('ix_course_offering_facilitator_id', 'course_offering', ['facilitator_id'])

    op.create_table(
        'activity_tracker',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('allocation_id', sa.Uuid(), nullable=False),
        sa.Column('facilitator_id', sa.Uuid(), nullable=False),
        sa.Column('week_number', sa.Integer(), nullable=False),
        sa.Column('week_start_date', sa.Date(), nullable=False),
        sa.Column('week_end_date', sa.Date(), nullable=False),
        sa.Column('attendance', sa.JSON(), nullable=False),
        *[
            sa.Column(field, sa.Text(), server_default='Not Started', nullable=False)
            for field in TASK_FIELDS
        ],
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['allocation_id'], ['course_offering.id'], ),
        sa.ForeignKeyConstraint(['facilitator_id'], ['facilitator.id'], ),
        sa.UniqueConstraint('allocation_id', 'week_number', name='uq_activity_tracker_allocation_week'),
        sa.CheckConstraint('week_number >= 1 AND week_number <= 52', name='ck_activity_tracker_week_number'),
        sa.CheckConstraint('week_end_date > week_start_date', name='ck_activity_tracker_week_dates'),
        *[
            sa.CheckConstraint(f"{field} IN ('Not Started', 'Pending', 'Done')", name=f'ck_activity_tracker_{field}')
            for field in TASK_FIELDS
        ],
    )
    op.create_index('ix_activity_tracker_facilitator_week', 'activity_tracker', ['facilitator_id', 'week_number'])
    op.create_index('ix_activity_tracker_week_dates', 'activity_tracker', ['week_start_date', 'week_end_date'])
    # Overdue scan: unsubmitted logs by week end
    op.create_index(
        'ix_activity_tracker_unsubmitted_week_end',
        'activity_tracker',
        ['week_end_date'],
        postgresql_where=sa.text('submitted_at IS NULL'),
    )


def downgrade() -> None:
    op.drop_index('ix_activity_tracker_unsubmitted_week_end', table_name='activity_tracker')
    op.drop_index('ix_activity_tracker_week_dates', table_name='activity_tracker')
    op.drop_index('ix_activity_tracker_facilitator_week', table_name='activity_tracker')
    op.drop_table('activity_tracker')
    op.drop_index('ix_course_offering_facilitator_id', table_name='course_offering')
    op.drop_table('course_offering')
    op.drop_table('cohort')
    op.drop_table('course_module')
    op.drop_table('facilitator')
    op.drop_table('manager')
    op.drop_table('user_account')
