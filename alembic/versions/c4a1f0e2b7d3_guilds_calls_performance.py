"""guilds_calls_performance

Guild configs, call log and post-call performance tables.

Revision ID: c4a1f0e2b7d3
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'c4a1f0e2b7d3'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'guild_configs',
        sa.Column('guild_id', sa.String(32), primary_key=True),
        sa.Column('guild_name', sa.String(100), nullable=False, server_default=''),
        sa.Column('channel_id', sa.String(32), nullable=True),
        sa.Column('autopost_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('config', sa.JSON(), nullable=False),
        sa.Column('call_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_call_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('idx_guild_configs_autopost', 'guild_configs', ['autopost_enabled'])

    op.create_table(
        'call_logs',
        sa.Column('id', sa.String(128), primary_key=True),
        sa.Column('guild_id', sa.String(32), nullable=False),
        sa.Column('channel_id', sa.String(32), nullable=False),
        sa.Column('token_mint', sa.String(64), nullable=False),
        sa.Column('triggered_by', sa.String(10), nullable=False),
        sa.Column('user_id', sa.String(32), nullable=True),
        sa.Column('message_id', sa.String(32), nullable=True),
        sa.Column('call_card', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('idx_call_logs_guild_time', 'call_logs', ['guild_id', 'created_at'])
    op.create_index('idx_call_logs_mint', 'call_logs', ['token_mint'])

    op.create_table(
        'call_performance',
        sa.Column('call_id', sa.String(128), primary_key=True),
        sa.Column('guild_id', sa.String(32), nullable=False),
        sa.Column('channel_id', sa.String(32), nullable=True),
        sa.Column('token_address', sa.String(64), nullable=False),
        sa.Column('token_symbol', sa.String(32), nullable=False),
        sa.Column('call_price', sa.Float(), nullable=False),
        sa.Column('call_at', sa.DateTime(), nullable=False),
        sa.Column('ath_price', sa.Float(), nullable=False),
        sa.Column('ath_at', sa.DateTime(), nullable=False),
        sa.Column('last_price', sa.Float(), nullable=False),
        sa.Column('last_checked_at', sa.DateTime(), nullable=False),
        sa.Column('bonus_alert_sent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('bonus_alert_at', sa.DateTime(), nullable=True),
    )
    op.create_index(
        'idx_call_performance_guild_time', 'call_performance', ['guild_id', 'call_at']
    )


def downgrade() -> None:
    op.drop_index('idx_call_performance_guild_time', 'call_performance')
    op.drop_table('call_performance')
    op.drop_index('idx_call_logs_mint', 'call_logs')
    op.drop_index('idx_call_logs_guild_time', 'call_logs')
    op.drop_table('call_logs')
    op.drop_index('idx_guild_configs_autopost', 'guild_configs')
    op.drop_table('guild_configs')
