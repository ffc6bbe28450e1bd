"""create toolbox talk and subtitle job tables

Revision ID: 20261019_subtitle_tables
Revises:
Create Date: 2026-10-19 00:01:00
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '20261019_subtitle_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'toolbox_talks',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('tenant_id', sa.String(length=36), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_toolbox_talks_tenant_id', 'toolbox_talks', ['tenant_id'])

    op.create_table(
        'subtitle_jobs',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('tenant_id', sa.String(length=36), nullable=False),
        sa.Column('toolbox_talk_id', sa.String(length=36), sa.ForeignKey('toolbox_talks.id'), nullable=False),
        sa.Column('source_video_url', sa.String(length=2048), nullable=False),
        sa.Column('video_source_type', sa.String(length=20), nullable=False, server_default='direct_url'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('english_srt_content', sa.Text(), nullable=True),
        sa.Column('english_srt_url', sa.String(length=2048), nullable=True),
        sa.Column('total_subtitles', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_subtitle_jobs_tenant_id', 'subtitle_jobs', ['tenant_id'])
    op.create_index('ix_subtitle_jobs_toolbox_talk_id', 'subtitle_jobs', ['toolbox_talk_id'])
    op.create_index('ix_subtitle_jobs_status', 'subtitle_jobs', ['status'])
    op.create_index('ix_subtitle_jobs_created_at', 'subtitle_jobs', ['created_at'])

    op.create_table(
        'subtitle_job_languages',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('job_id', sa.String(length=36), sa.ForeignKey('subtitle_jobs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('language', sa.String(length=64), nullable=False),
        sa.Column('language_code', sa.String(length=10), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('srt_content', sa.Text(), nullable=True),
        sa.Column('srt_url', sa.String(length=2048), nullable=True),
        sa.Column('storage_key', sa.String(length=512), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_subtitles', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('subtitles_processed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_subtitle_job_languages_job_id', 'subtitle_job_languages', ['job_id'])


def downgrade() -> None:
    op.drop_index('ix_subtitle_job_languages_job_id', table_name='subtitle_job_languages')
    op.drop_table('subtitle_job_languages')
    op.drop_index('ix_subtitle_jobs_created_at', table_name='subtitle_jobs')
    op.drop_index('ix_subtitle_jobs_status', table_name='subtitle_jobs')
    op.drop_index('ix_subtitle_jobs_toolbox_talk_id', table_name='subtitle_jobs')
    op.drop_index('ix_subtitle_jobs_tenant_id', table_name='subtitle_jobs')
    op.drop_table('subtitle_jobs')
    op.drop_index('ix_toolbox_talks_tenant_id', table_name='toolbox_talks')
    op.drop_table('toolbox_talks')
