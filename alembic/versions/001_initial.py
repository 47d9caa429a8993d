"""Initial migration

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Exchange rates table (one row per base currency)
    op.create_table(
        'exchange_rates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('base_currency', sa.String(length=8), nullable=False),
        sa.Column('rates', sa.JSON(), nullable=False),
        sa.Column('last_updated', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('base_currency', name='uq_exchange_rates_base_currency')
    )

    # Search result cache
    op.create_table(
        'search_cache',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('query', sa.String(length=512), nullable=False),
        sa.Column('deals', sa.JSON(), nullable=False),
        sa.Column('total_valid', sa.Integer(), nullable=False),
        sa.Column('last_updated', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('query', name='uq_search_cache_query')
    )

    # Watches table
    op.create_table(
        'watches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_id', sa.String(length=64), nullable=False),
        sa.Column('owner_contact', sa.String(length=255), nullable=True),
        sa.Column('item_name', sa.String(length=255), nullable=False),
        sa.Column('search_query', sa.Text(), nullable=False),
        sa.Column('region', sa.String(length=8), nullable=True),
        sa.Column('frequency_hours', sa.Float(), nullable=False),
        sa.Column('min_price', sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column('max_price', sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('notification_channel', sa.String(length=16), nullable=False),
        sa.Column('last_run_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_watches_owner_id', 'watches', ['owner_id'])
    op.create_index('ix_watches_is_active', 'watches', ['is_active'])

    # Watch notifications table
    op.create_table(
        'watch_notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('watch_id', sa.Integer(), nullable=False),
        sa.Column('owner_id', sa.String(length=64), nullable=False),
        sa.Column('deals', sa.JSON(), nullable=False),
        sa.Column('summary', sa.Text(), nullable=False),
        sa.Column('channel', sa.String(length=16), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['watch_id'], ['watches.id'], )
    )
    op.create_index('ix_watch_notifications_watch_id', 'watch_notifications', ['watch_id'])
    op.create_index('ix_watch_notifications_owner_id', 'watch_notifications', ['owner_id'])


def downgrade() -> None:
    op.drop_index('ix_watch_notifications_owner_id', table_name='watch_notifications')
    op.drop_index('ix_watch_notifications_watch_id', table_name='watch_notifications')
    op.drop_table('watch_notifications')
    op.drop_index('ix_watches_is_active', table_name='watches')
    op.drop_index('ix_watches_owner_id', table_name='watches')
    op.drop_table('watches')
    op.drop_table('search_cache')
    op.drop_table('exchange_rates')
