"""create_smart_pricing_tables

Revision ID: 3f9a1c7e2b10
Revises:
Create Date: 2026-10-19 09:12:44.318205

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9a1c7e2b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

pricing_state = sa.Enum('INCREASING', 'WAITING_AFTER_REVERT', 'AT_MAX_CAP', name='pricingstate')
price_change_action = sa.Enum('INCREASE', 'REVERT', name='pricechangeaction')
undo_action = sa.Enum('GLOBAL_ON', 'GLOBAL_OFF', 'INDIVIDUAL_ON', 'INDIVIDUAL_OFF', name='undoaction')
run_status = sa.Enum('COMPLETED', 'COMPLETED_WITH_ERRORS', 'SKIPPED', 'FAILED', name='runstatus')


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'stores',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('shop_domain', sa.String(), nullable=False),
        sa.Column('access_token', sa.String(), nullable=True),
        sa.Column('smart_pricing_enabled', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('shop_domain'),
    )
    op.create_index(op.f('ix_stores_id'), 'stores', ['id'], unique=False)

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('external_id', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=True),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_id', 'external_id', name='uq_product_store_external'),
    )
    op.create_index(op.f('ix_products_id'), 'products', ['id'], unique=False)

    op.create_table(
        'priced_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('external_id', sa.String(), nullable=False),
        sa.Column('external_product_id', sa.String(), nullable=True),
        sa.Column('title', sa.String(), nullable=True),
        sa.Column('starting_price', sa.Float(), nullable=True),
        sa.Column('current_price', sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_id', 'external_id', name='uq_item_store_external'),
    )
    op.create_index(op.f('ix_priced_items_id'), 'priced_items', ['id'], unique=False)
    op.create_index(op.f('ix_priced_items_store_id'), 'priced_items', ['store_id'], unique=False)

    op.create_table(
        'pricing_configs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=True),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('auto_pricing_enabled', sa.Boolean(), nullable=False),
        sa.Column('current_state', pricing_state, nullable=False),
        sa.Column('increment_percentage', sa.Float(), nullable=False),
        sa.Column('period_hours', sa.Float(), nullable=False),
        sa.Column('revenue_drop_threshold', sa.Float(), nullable=False),
        sa.Column('wait_hours_after_revert', sa.Float(), nullable=False),
        sa.Column('max_increase_percentage', sa.Float(), nullable=False),
        sa.Column('last_price_change_at', sa.DateTime(), nullable=True),
        sa.Column('next_eligible_change_at', sa.DateTime(), nullable=True),
        sa.Column('revert_wait_until', sa.DateTime(), nullable=True),
        sa.Column('pre_automation_price', sa.Float(), nullable=True),
        sa.Column('last_automation_price', sa.Float(), nullable=True),
        sa.Column('is_first_increase', sa.Boolean(), nullable=False),
        sa.CheckConstraint('item_id IS NOT NULL OR product_id IS NOT NULL', name='ck_pricing_config_attachment'),
        sa.ForeignKeyConstraint(['item_id'], ['priced_items.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('item_id'),
        sa.UniqueConstraint('product_id'),
    )
    op.create_index(op.f('ix_pricing_configs_id'), 'pricing_configs', ['id'], unique=False)

    op.create_table(
        'price_change_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('old_price', sa.Float(), nullable=False),
        sa.Column('new_price', sa.Float(), nullable=False),
        sa.Column('action', price_change_action, nullable=False),
        sa.Column('reason', sa.String(), nullable=True),
        sa.Column('revenue_previous_period', sa.Float(), nullable=True),
        sa.Column('revenue_current_period', sa.Float(), nullable=True),
        sa.Column('revenue_change_percent', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['item_id'], ['priced_items.id']),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_price_change_records_id'), 'price_change_records', ['id'], unique=False)
    op.create_index('ix_price_change_records_lookup', 'price_change_records', ['item_id', 'action', 'created_at'], unique=False)

    op.create_table(
        'sales_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('sold_at', sa.DateTime(), nullable=False),
        sa.Column('units', sa.Integer(), nullable=False),
        sa.Column('revenue', sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(['item_id'], ['priced_items.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_sales_records_id'), 'sales_records', ['id'], unique=False)
    op.create_index('ix_sales_records_item_sold_at', 'sales_records', ['item_id', 'sold_at'], unique=False)

    op.create_table(
        'pricing_runs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('status', run_status, nullable=False),
        sa.Column('items_processed', sa.Integer(), nullable=False),
        sa.Column('items_increased', sa.Integer(), nullable=False),
        sa.Column('items_reverted', sa.Integer(), nullable=False),
        sa.Column('items_waiting', sa.Integer(), nullable=False),
        sa.Column('items_skipped', sa.Integer(), nullable=False),
        sa.Column('errors', sa.JSON(), nullable=True),
        sa.Column('notes', sa.JSON(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('finished_at', sa.DateTime(), nullable=False),
        sa.Column('duration_ms', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_pricing_runs_id'), 'pricing_runs', ['id'], unique=False)
    op.create_index(op.f('ix_pricing_runs_store_id'), 'pricing_runs', ['store_id'], unique=False)

    op.create_table(
        'undo_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('user_key', sa.String(), nullable=False),
        sa.Column('action', undo_action, nullable=False),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('snapshots', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_id', 'user_key', name='uq_undo_store_user'),
    )
    op.create_index(op.f('ix_undo_records_id'), 'undo_records', ['id'], unique=False)

    op.create_table(
        'sweep_locks',
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('holder', sa.String(), nullable=True),
        sa.Column('acquired_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id']),
        sa.PrimaryKeyConstraint('store_id'),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('sweep_locks')
    op.drop_index(op.f('ix_undo_records_id'), table_name='undo_records')
    op.drop_table('undo_records')
    op.drop_index(op.f('ix_pricing_runs_store_id'), table_name='pricing_runs')
    op.drop_index(op.f('ix_pricing_runs_id'), table_name='pricing_runs')
    op.drop_table('pricing_runs')
    op.drop_index('ix_sales_records_item_sold_at', table_name='sales_records')
    op.drop_index(op.f('ix_sales_records_id'), table_name='sales_records')
    op.drop_table('sales_records')
    op.drop_index('ix_price_change_records_lookup', table_name='price_change_records')
    op.drop_index(op.f('ix_price_change_records_id'), table_name='price_change_records')
    op.drop_table('price_change_records')
    op.drop_index(op.f('ix_pricing_configs_id'), table_name='pricing_configs')
    op.drop_table('pricing_configs')
    op.drop_index(op.f('ix_priced_items_store_id'), table_name='priced_items')
    op.drop_index(op.f('ix_priced_items_id'), table_name='priced_items')
    op.drop_table('priced_items')
    op.drop_index(op.f('ix_products_id'), table_name='products')
    op.drop_table('products')
    op.drop_index(op.f('ix_stores_id'), table_name='stores')
    op.drop_table('stores')
