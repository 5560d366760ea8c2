"""create user and match tables

Revision ID: 5c1d9e7a2b40
Revises:
Create Date: 2026-10-17 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c1d9e7a2b40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=False),
        sa.Column('games_played', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('games_won', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('games_lost', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_shots', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_hits', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_user_username', 'user', ['username'], unique=True)

    op.create_table(
        'match',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('room_code', sa.String(length=6), nullable=True),
        sa.Column('player1_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('player2_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('winner_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='in_progress'),
        sa.Column('end_reason', sa.String(length=32), nullable=True),
        sa.Column('total_turns', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('player1_shots', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('player2_shots', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('player1_hits', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('player2_hits', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_match_room_code', 'match', ['room_code'])


def downgrade():
    op.drop_index('ix_match_room_code', table_name='match')
    op.drop_table('match')
    op.drop_index('ix_user_username', table_name='user')
    op.drop_table('user')
