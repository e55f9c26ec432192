"""Insight cache schema

Revision ID: 001
Revises:
Create Date: 2026-10-18

Creates the insight cache tables:
- ai_cache: cached one-shot generation results, one row per cache key
- cache_settings: key/value settings (adaptive TTL configuration)
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'ai_cache',
        sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('cache_key', sa.String(512), nullable=False),
        sa.Column('cache_type', sa.String(100), nullable=False),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('response_data', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('hit_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('last_hit_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('base_ttl_hours', sa.Integer(), nullable=True),
        sa.Column('adjusted_ttl_hours', sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('cache_key', name='uq_ai_cache_cache_key'),
    )
    op.create_index('ix_ai_cache_cache_type', 'ai_cache', ['cache_type'])
    op.create_index('ix_ai_cache_user_id', 'ai_cache', ['user_id'])
    op.create_index('ix_ai_cache_created_at', 'ai_cache', ['created_at'])
    op.create_index('ix_ai_cache_expires_at', 'ai_cache', ['expires_at'])

    op.create_table(
        'cache_settings',
        sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('setting_key', sa.String(255), nullable=False),
        sa.Column('setting_value', sa.JSON(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('setting_key', name='uq_cache_settings_setting_key'),
    )


def downgrade() -> None:
    op.drop_table('cache_settings')
    op.drop_index('ix_ai_cache_expires_at', table_name='ai_cache')
    op.drop_index('ix_ai_cache_created_at', table_name='ai_cache')
    op.drop_index('ix_ai_cache_user_id', table_name='ai_cache')
    op.drop_index('ix_ai_cache_cache_type', table_name='ai_cache')
    op.drop_table('ai_cache')
