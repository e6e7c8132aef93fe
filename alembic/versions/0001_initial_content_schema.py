"""initial content schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'projects',
        sa.Column('project_id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('repo_full_name', sa.String(length=255), nullable=False),
        sa.Column('target_branch', sa.String(length=255), nullable=False, server_default='main'),
        sa.Column('root_path', sa.String(length=1024), nullable=False, server_default=''),
        sa.Column('deployment_url', sa.String(length=2048), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('last_analyzed_at', sa.TIMESTAMP(), nullable=True),
        sa.Column('analysis_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('idx_projects_repo', 'projects', ['repo_full_name'])

    op.create_table(
        'analysis_jobs',
        sa.Column('job_id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('project_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('projects.project_id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('full_rescan', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('cancel_requested', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('prior_project_status', sa.String(length=20), nullable=True),
        sa.Column('prior_analysis_error', sa.Text(), nullable=True),
        sa.Column('pages_visited', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('pages_failed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('elements_found', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('page_errors', postgresql.JSONB(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False, server_default=sa.func.now()),
        sa.Column('started_at', sa.TIMESTAMP(), nullable=True),
        sa.Column('completed_at', sa.TIMESTAMP(), nullable=True),
    )
    op.create_index('idx_analysis_jobs_project_created', 'analysis_jobs', ['project_id', 'created_at'])
    op.create_index(
        'uq_analysis_jobs_active_project', 'analysis_jobs', ['project_id'],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'analyzing')"),
    )

    op.create_table(
        'sections',
        sa.Column('section_id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('project_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('projects.project_id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('source_file', sa.String(length=1024), nullable=False),
        sa.Column('start_line', sa.Integer(), nullable=False),
        sa.Column('end_line', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('project_id', 'source_file', 'start_line', name='uq_section_region'),
    )
    op.create_index('idx_sections_project', 'sections', ['project_id'])

    op.create_table(
        'elements',
        sa.Column('element_id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('project_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('projects.project_id', ondelete='CASCADE'), nullable=False),
        sa.Column('section_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('sections.section_id', ondelete='SET NULL'), nullable=True),
        sa.Column('parent_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('elements.element_id', ondelete='SET NULL'), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('element_type', sa.String(length=20), nullable=False),
        sa.Column('selector', sa.String(length=2048), nullable=False),
        sa.Column('xpath', sa.String(length=2048), nullable=True),
        sa.Column('page_url', sa.String(length=2048), nullable=False),
        sa.Column('current_value', sa.Text(), nullable=True),
        sa.Column('confidence', sa.Float(), nullable=False, server_default='0'),
        sa.Column('source_file', sa.String(length=1024), nullable=True),
        sa.Column('source_line', sa.Integer(), nullable=True),
        sa.Column('source_column', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('project_id', 'page_url', 'selector', name='uq_element_identity'),
    )
    op.create_index('idx_elements_project_page', 'elements', ['project_id', 'page_url'])
    op.create_index('idx_elements_section', 'elements', ['section_id'])

    op.create_table(
        'pull_requests',
        sa.Column('pull_request_id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('project_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('projects.project_id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('pr_number', sa.Integer(), nullable=False),
        sa.Column('pr_url', sa.String(length=2048), nullable=False),
        sa.Column('branch_name', sa.String(length=255), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='open'),
        sa.Column('edit_fingerprint', sa.String(length=64), nullable=False),
        sa.Column('merged_at', sa.TIMESTAMP(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('idx_pull_requests_project_status', 'pull_requests', ['project_id', 'status'])
    op.create_index('idx_pull_requests_fingerprint', 'pull_requests', ['project_id', 'edit_fingerprint'])

    op.create_table(
        'edits',
        sa.Column('edit_id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('element_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('elements.element_id', ondelete='CASCADE'), nullable=False),
        sa.Column('project_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('projects.project_id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('old_value', sa.Text(), nullable=True),
        sa.Column('new_value', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='draft'),
        sa.Column('pull_request_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('pull_requests.pull_request_id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('idx_edits_project_status', 'edits', ['project_id', 'status'])
    op.create_index('idx_edits_element', 'edits', ['element_id'])
    op.create_index('idx_edits_pull_request', 'edits', ['pull_request_id'])


def downgrade() -> None:
    op.drop_table('edits')
    op.drop_table('pull_requests')
    op.drop_table('elements')
    op.drop_table('sections')
    op.drop_table('analysis_jobs')
    op.drop_table('projects')
