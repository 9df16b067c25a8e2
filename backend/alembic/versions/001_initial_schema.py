"""Initial catalog sync schema.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ### Products table ###
    op.create_table(
        'products',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('owner_id', sa.String(255), nullable=False, index=True),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('price', sa.Numeric(precision=10, scale=2)),
        sa.Column('inventory', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sku', sa.String(255)),
        sa.Column('brand', sa.String(255)),
        sa.Column('category', sa.String(255)),
        sa.Column('weight', sa.Numeric(precision=10, scale=3)),
        sa.Column('tags', postgresql.JSONB(), server_default='[]'),
        sa.Column('images', postgresql.JSONB(), server_default='[]'),
        sa.Column('status', sa.String(20), server_default='draft'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ### Platform connections table ###
    op.create_table(
        'platform_connections',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('owner_id', sa.String(255), nullable=False, index=True),
        sa.Column('platform', sa.String(20), nullable=False),
        sa.Column('connection_name', sa.String(100), nullable=False),
        sa.Column('shop_domain', sa.String(255), index=True),
        sa.Column('credentials_encrypted', sa.Text(), nullable=False),
        sa.Column('configuration', postgresql.JSONB(), server_default='{}'),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        sa.Column('last_connected', sa.DateTime(timezone=True)),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint(
            'owner_id', 'platform', 'connection_name',
            name='uq_platform_connections_owner_platform_name',
        ),
    )

    # ### Channel mappings table ###
    op.create_table(
        'channel_mappings',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('product_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('platform', sa.String(20), nullable=False),
        sa.Column('external_id', sa.String(255)),
        sa.Column('external_variant_id', sa.String(255)),
        sa.Column('sync_status', sa.String(20), server_default='pending', index=True),
        sa.Column('last_synced', sa.DateTime(timezone=True)),
        sa.Column('error_message', sa.Text()),
        sa.Column('error_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sync_data', postgresql.JSONB(), server_default='{}'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('product_id', 'platform', name='uq_channel_mappings_product_platform'),
    )
    op.create_index('ix_channel_mappings_platform_external_id', 'channel_mappings', ['platform', 'external_id'])

    # ### Sync logs table ###
    op.create_table(
        'sync_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('owner_id', sa.String(255), index=True),
        sa.Column('product_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('products.id', ondelete='SET NULL'), index=True),
        sa.Column('scope', sa.String(20), server_default='product'),
        sa.Column('platform', sa.String(20), nullable=False),
        sa.Column('operation', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('message', sa.Text()),
        sa.Column('request_data', postgresql.JSONB()),
        sa.Column('response_data', postgresql.JSONB()),
        sa.Column('execution_time', sa.Float()),
        sa.Column('webhook_id', sa.String(255), index=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), index=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table('sync_logs')
    op.drop_index('ix_channel_mappings_platform_external_id', 'channel_mappings')
    op.drop_table('channel_mappings')
    op.drop_table('platform_connections')
    op.drop_table('products')
