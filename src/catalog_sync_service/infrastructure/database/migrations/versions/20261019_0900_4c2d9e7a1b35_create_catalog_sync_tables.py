"""Create catalog sync tables

Revision ID: 4c2d9e7a1b35
Revises:
Create Date: 2026-10-19 09:00:00.000000+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '4c2d9e7a1b35'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _status(*values: str, name: str) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False, length=32)


def upgrade() -> None:
    op.create_table('tenant_integrations',
    sa.Column('tenant_id', sa.String(length=255), nullable=False),
    sa.Column('commerce_domain', sa.String(length=255), nullable=True),
    sa.Column('commerce_access_token', sa.String(length=255), nullable=True),
    sa.Column('vector_api_key', sa.String(length=255), nullable=True),
    sa.Column('vector_environment', sa.String(length=255), nullable=True),
    sa.Column('vector_namespace', sa.String(length=255), nullable=True),
    sa.Column('vector_index_name', sa.String(length=255), nullable=True),
    sa.Column('vector_host', sa.String(length=500), nullable=True),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('tenant_id')
    )

    op.create_table('catalog_items',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('tenant_id', sa.String(length=255), nullable=False),
    sa.Column('external_item_id', sa.String(length=255), nullable=False),
    sa.Column('title', sa.String(length=500), nullable=False),
    sa.Column('handle', sa.String(length=500), nullable=True),
    sa.Column('url', sa.String(length=1000), nullable=True),
    sa.Column('image_url', sa.String(length=1000), nullable=True),
    sa.Column('price', sa.String(length=32), nullable=False),
    sa.Column('category', sa.String(length=255), nullable=True),
    sa.Column('tags', sa.JSON(), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('item_status', _status('active', 'draft', 'archived', name='itemstatus'), nullable=False),
    sa.Column('inventory_quantity', sa.Integer(), nullable=False),
    sa.Column('inventory_tracked', sa.Boolean(), nullable=False),
    sa.Column('import_status', _status('pending', 'synced', 'failed', name='importstatus'), nullable=False),
    sa.Column('import_last_sync_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('import_attempts', sa.Integer(), nullable=False),
    sa.Column('index_status', _status('not_configured', 'pending', 'vectorizing', 'upserting', 'indexed', 'failed', name='indexstatus'), nullable=False),
    sa.Column('vector_id', sa.String(length=255), nullable=True),
    sa.Column('index_last_sync_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('index_attempts', sa.Integer(), nullable=False),
    sa.Column('content_hash', sa.String(length=64), nullable=True),
    sa.Column('last_error', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('tenant_id', 'external_item_id', name='uq_catalog_items_tenant_external')
    )
    op.create_index('ix_catalog_items_tenant_import_index', 'catalog_items', ['tenant_id', 'import_status', 'index_status'], unique=False)
    op.create_index('ix_catalog_items_tenant_item_status', 'catalog_items', ['tenant_id', 'item_status'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_catalog_items_tenant_item_status', table_name='catalog_items')
    op.drop_index('ix_catalog_items_tenant_import_index', table_name='catalog_items')
    op.drop_table('catalog_items')
    op.drop_table('tenant_integrations')
