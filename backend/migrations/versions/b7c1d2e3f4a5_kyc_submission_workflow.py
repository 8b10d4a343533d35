"""kyc submission workflow

Revision ID: b7c1d2e3f4a5
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the KYC submission tracking schema:
- submissions: one row per marketer verification attempt (status + review results)
- submission_forms: the three intake form slots per submission
- submission_audit_events: append-only workflow history (timeline source)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'b7c1d2e3f4a5'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # submissions
    # ============================================================================
    op.create_table(
        'submissions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('marketer_id', sa.Integer(), nullable=False),
        sa.Column('assigned_admin_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=40), nullable=False),
        sa.Column('admin_uploaded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('admin_uploaded_by_id', sa.Integer(), nullable=True),
        sa.Column('superadmin_reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('superadmin_result', sa.String(length=16), nullable=True),
        sa.Column('superadmin_notes', sa.Text(), nullable=True),
        sa.Column('superadmin_reviewed_by_id', sa.Integer(), nullable=True),
        sa.Column('masteradmin_decided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('masteradmin_result', sa.String(length=16), nullable=True),
        sa.Column('masteradmin_notes', sa.Text(), nullable=True),
        sa.Column('masteradmin_decided_by_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_submissions_marketer_id', 'submissions', ['marketer_id'])
    op.create_index('ix_submissions_assigned_admin_id', 'submissions', ['assigned_admin_id'])
    op.create_index('ix_submissions_status', 'submissions', ['status'])
    op.create_index('ix_submissions_created_at', 'submissions', ['created_at'])
    op.create_index('ix_submissions_marketer_status', 'submissions', ['marketer_id', 'status'])
    op.create_index('ix_submissions_status_created', 'submissions', ['status', 'created_at'])

    # ============================================================================
    # submission_forms
    # ============================================================================
    op.create_table(
        'submission_forms',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('submission_id', sa.Integer(), nullable=False),
        sa.Column('form_name', sa.String(length=32), nullable=False),
        sa.Column('submitted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['submission_id'], ['submissions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('submission_id', 'form_name', name='uq_submission_forms_name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_submission_forms_submission_id', 'submission_forms', ['submission_id'])

    # ============================================================================
    # submission_audit_events: append-only, never updated
    # ============================================================================
    op.create_table(
        'submission_audit_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('submission_id', sa.Integer(), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('actor_role', sa.String(length=32), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('from_status', sa.String(length=40), nullable=True),
        sa.Column('to_status', sa.String(length=40), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['submission_id'], ['submissions.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_submission_audit_events_submission_id', 'submission_audit_events', ['submission_id'])
    op.create_index('ix_submission_audit_events_action', 'submission_audit_events', ['action'])
    op.create_index('ix_submission_audit_events_occurred_at', 'submission_audit_events', ['occurred_at'])
    op.create_index(
        'ix_submission_audit_submission_occurred',
        'submission_audit_events',
        ['submission_id', 'occurred_at'],
    )


def downgrade():
    op.drop_table('submission_audit_events')
    op.drop_table('submission_forms')
    op.drop_table('submissions')
