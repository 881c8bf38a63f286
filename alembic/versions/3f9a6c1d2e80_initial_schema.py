"""Initial schema: items, snapshots, alerts, growth_benchmarks, digests

Revision ID: 3f9a6c1d2e80
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9a6c1d2e80'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('items',
        sa.Column('id', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('url', sa.Text(), nullable=True),
        sa.Column('author', sa.Text(), nullable=False),
        sa.Column('item_type', sa.Text(), nullable=False),
        sa.Column('first_seen_at', sa.DateTime(), nullable=False),
        sa.Column('last_updated_at', sa.DateTime(), nullable=False),
        sa.Column('is_dead', sa.Boolean(), nullable=False),
        sa.Column('is_deleted', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_items_first_seen', 'items', ['first_seen_at'])
    op.create_index('idx_items_type', 'items', ['item_type'])
    op.create_index('idx_items_author', 'items', ['author'])

    op.create_table('snapshots',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('comment_count', sa.Integer(), nullable=False),
        sa.Column('captured_at', sa.DateTime(), nullable=False),
        sa.Column('minutes_since_creation', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['item_id'], ['items.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('item_id', 'captured_at', name='uq_snapshot_item_capture'),
    )
    op.create_index('idx_snapshots_item', 'snapshots', ['item_id', 'captured_at'])
    op.create_index('idx_snapshots_captured', 'snapshots', ['captured_at'])
    op.create_index('idx_snapshots_age', 'snapshots', ['minutes_since_creation'])

    op.create_table('alerts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('alert_type', sa.Text(), nullable=False),
        sa.Column('percentile', sa.Float(), nullable=False),
        sa.Column('growth_rate', sa.Float(), nullable=False),
        sa.Column('score_at_alert', sa.Integer(), nullable=False),
        sa.Column('comments_at_alert', sa.Integer(), nullable=False),
        sa.Column('item_age_minutes', sa.Integer(), nullable=False),
        sa.Column('detected_at', sa.DateTime(), nullable=False),
        sa.Column('is_sent', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['item_id'], ['items.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('item_id', 'alert_type', name='uq_alert_item_type'),
    )
    op.create_index('idx_alerts_detected', 'alerts', ['detected_at'])
    op.create_index('idx_alerts_sent', 'alerts', ['is_sent', 'detected_at'])
    op.create_index('idx_alerts_item', 'alerts', ['item_id'])

    op.create_table('growth_benchmarks',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('age_bucket', sa.Text(), nullable=False),
        sa.Column('metric_type', sa.Text(), nullable=False),
        sa.Column('p50', sa.Float(), nullable=True),
        sa.Column('p75', sa.Float(), nullable=True),
        sa.Column('p90', sa.Float(), nullable=True),
        sa.Column('p95', sa.Float(), nullable=True),
        sa.Column('p99', sa.Float(), nullable=True),
        sa.Column('sample_size', sa.Integer(), nullable=False),
        sa.Column('calculated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('age_bucket', 'metric_type', name='uq_benchmark_bucket_metric'),
    )
    op.create_index('idx_benchmarks_calculated', 'growth_benchmarks', ['calculated_at'])

    op.create_table('digests',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('sent_at', sa.DateTime(), nullable=False),
        sa.Column('alert_ids', sa.JSON(), nullable=False),
        sa.Column('alert_count', sa.Integer(), nullable=False),
        sa.Column('digest_type', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_digests_sent', 'digests', ['sent_at'])
    op.create_index('idx_digests_status', 'digests', ['status'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('idx_digests_status', table_name='digests')
    op.drop_index('idx_digests_sent', table_name='digests')
    op.drop_table('digests')

    op.drop_index('idx_benchmarks_calculated', table_name='growth_benchmarks')
    op.drop_table('growth_benchmarks')

    op.drop_index('idx_alerts_item', table_name='alerts')
    op.drop_index('idx_alerts_sent', table_name='alerts')
    op.drop_index('idx_alerts_detected', table_name='alerts')
    op.drop_table('alerts')

    op.drop_index('idx_snapshots_age', table_name='snapshots')
    op.drop_index('idx_snapshots_captured', table_name='snapshots')
    op.drop_index('idx_snapshots_item', table_name='snapshots')
    op.drop_table('snapshots')

    op.drop_index('idx_items_author', table_name='items')
    op.drop_index('idx_items_type', table_name='items')
    op.drop_index('idx_items_first_seen', table_name='items')
    op.drop_table('items')
