"""create hit and stats tables

Revision ID: 3c9d2e7a41b0
Revises:
Create Date: 2026-10-18 09:12:47.201833

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c9d2e7a41b0'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

STATS_TABLES = (
    'visitor_stats',
    'visitor_time_stats',
    'language_stats',
    'referrer_stats',
    'os_stats',
    'browser_stats',
)


def _stats_columns() -> list[sa.Column]:
    return [
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.BigInteger(), nullable=True),
        sa.Column('day', sa.Date(), nullable=False),
        sa.Column('path', sa.String(length=2000), nullable=False),
        sa.Column('visitors', sa.Integer(), nullable=False, server_default='0'),
    ]


def upgrade() -> None:
    # hit table
    op.create_table(
        'hit',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.BigInteger(), nullable=True),
        sa.Column('fingerprint', sa.String(length=2000), nullable=False),
        sa.Column('path', sa.String(length=2000), nullable=False),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('language', sa.String(length=10), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('ref', sa.Text(), nullable=True),
        sa.Column('os', sa.String(length=20), nullable=True),
        sa.Column('os_version', sa.String(length=20), nullable=True),
        sa.Column('browser', sa.String(length=20), nullable=True),
        sa.Column('browser_version', sa.String(length=20), nullable=True),
        sa.Column('desktop', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('mobile', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('time', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_hit_tenant_id_time', 'hit', ['tenant_id', 'time'], unique=False)

    # visitor_stats table
    op.create_table(
        'visitor_stats',
        *_stats_columns(),
        sa.Column('platform_desktop', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('platform_mobile', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('platform_unknown', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
    )

    # visitor_time_stats table
    op.create_table(
        'visitor_time_stats',
        *_stats_columns(),
        sa.Column('hour', sa.SmallInteger(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    # language_stats table
    op.create_table(
        'language_stats',
        *_stats_columns(),
        sa.Column('language', sa.String(length=10), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    # referrer_stats table
    op.create_table(
        'referrer_stats',
        *_stats_columns(),
        sa.Column('referrer', sa.String(length=2000), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    # os_stats table
    op.create_table(
        'os_stats',
        *_stats_columns(),
        sa.Column('os', sa.String(length=20), nullable=True),
        sa.Column('os_version', sa.String(length=20), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    # browser_stats table
    op.create_table(
        'browser_stats',
        *_stats_columns(),
        sa.Column('browser', sa.String(length=20), nullable=True),
        sa.Column('browser_version', sa.String(length=20), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    for table in STATS_TABLES:
        op.create_index(f'ix_{table}_tenant_id_day', table, ['tenant_id', 'day'], unique=False)


def downgrade() -> None:
    for table in reversed(STATS_TABLES):
        op.drop_index(f'ix_{table}_tenant_id_day', table_name=table)
        op.drop_table(table)

    op.drop_index('ix_hit_tenant_id_time', table_name='hit')
    op.drop_table('hit')
