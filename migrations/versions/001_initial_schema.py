"""Initial schema with all tables

Revision ID: 001
Revises: 
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create projects table
    op.create_table(
        'projects',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )

    # Create asset_groups table
    op.create_table(
        'asset_groups',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('project_id', sa.String(length=36), nullable=False),
        sa.Column('key', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('project_id', 'key', name='uq_asset_groups_project_key')
    )
    op.create_index(op.f('ix_asset_groups_project_id'), 'asset_groups', ['project_id'], unique=False)

    # Create sub_assets table
    op.create_table(
        'sub_assets',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('group_id', sa.String(length=36), nullable=False),
        sa.Column('key', sa.String(length=255), nullable=False),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('base_path', sa.String(length=500), nullable=False),
        sa.Column('path_template', sa.String(length=500), nullable=True),
        sa.Column('current_version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rule_pack_key', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['group_id'], ['asset_groups.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('group_id', 'key', name='uq_sub_assets_group_key'),
        sa.CheckConstraint('current_version >= 0', name='ck_sub_assets_current_version')
    )
    op.create_index(op.f('ix_sub_assets_group_id'), 'sub_assets', ['group_id'], unique=False)

    # Create asset_history table
    op.create_table(
        'asset_history',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('sub_asset_id', sa.String(length=36), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('change_note', sa.Text(), nullable=True),
        sa.Column('file_path', sa.String(length=1000), nullable=False),
        sa.Column('file_size', sa.BigInteger(), nullable=False),
        sa.Column('file_hash', sa.String(length=64), nullable=False),
        sa.Column('upload_job_id', sa.String(length=36), nullable=True),
        sa.Column('file_index', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['sub_asset_id'], ['sub_assets.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sub_asset_id', 'version', name='uq_asset_history_sub_asset_version'),
        sa.UniqueConstraint('upload_job_id', 'file_index', name='uq_asset_history_job_file')
    )
    op.create_index(op.f('ix_asset_history_sub_asset_id'), 'asset_history', ['sub_asset_id'], unique=False)
    op.create_index(op.f('ix_asset_history_upload_job_id'), 'asset_history', ['upload_job_id'], unique=False)

    # Create upload_jobs table
    op.create_table(
        'upload_jobs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False, server_default='QUEUED'),
        sa.Column('mode', sa.String(length=50), nullable=False, server_default='SINGLE'),
        sa.Column('created_by', sa.String(length=255), nullable=False),
        sa.Column('details_json', sa.Text(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_upload_jobs_status'), 'upload_jobs', ['status'], unique=False)
    op.create_index(op.f('ix_upload_jobs_created_at'), 'upload_jobs', ['created_at'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_upload_jobs_created_at'), table_name='upload_jobs')
    op.drop_index(op.f('ix_upload_jobs_status'), table_name='upload_jobs')
    op.drop_table('upload_jobs')
    op.drop_index(op.f('ix_asset_history_upload_job_id'), table_name='asset_history')
    op.drop_index(op.f('ix_asset_history_sub_asset_id'), table_name='asset_history')
    op.drop_table('asset_history')
    op.drop_index(op.f('ix_sub_assets_group_id'), table_name='sub_assets')
    op.drop_table('sub_assets')
    op.drop_index(op.f('ix_asset_groups_project_id'), table_name='asset_groups')
    op.drop_table('asset_groups')
    op.drop_table('projects')
