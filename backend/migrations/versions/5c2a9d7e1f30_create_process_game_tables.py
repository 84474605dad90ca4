"""create instructor, game_session, player, score and custom_level tables

Revision ID: 5c2a9d7e1f30
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c2a9d7e1f30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'instructor' not in existing_tables:
        op.create_table(
            'instructor',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('username', sa.String(length=64), nullable=False),
            sa.Column('password_hash', sa.String(length=256), nullable=False),
        )
        op.create_index('ix_instructor_username', 'instructor', ['username'], unique=True)

    if 'game_session' not in existing_tables:
        op.create_table(
            'game_session',
            sa.Column('id', sa.String(length=32), primary_key=True),
            sa.Column('host_id', sa.Integer(), sa.ForeignKey('instructor.id'), nullable=False),
            sa.Column('playlist', sa.Text(), nullable=False),
            sa.Column('current_level_index', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('status', sa.String(length=32), nullable=False, server_default='setup'),
            sa.Column('start_time', sa.Float(), nullable=True),
            sa.Column('end_time', sa.Float(), nullable=True),
            sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('created_at', sa.Float(), nullable=False),
        )

    if 'player' not in existing_tables:
        op.create_table(
            'player',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('session_id', sa.String(length=32), sa.ForeignKey('game_session.id'), nullable=False),
            sa.Column('nickname', sa.String(length=64), nullable=False),
            sa.Column('avatar', sa.String(length=16), nullable=False),
            sa.Column('player_token', sa.String(length=32), nullable=False),
            sa.Column('joined_at', sa.Float(), nullable=False),
            sa.UniqueConstraint('session_id', 'nickname', name='uq_player_session_nickname'),
        )
        op.create_index('ix_player_session_id', 'player', ['session_id'])

    if 'score' not in existing_tables:
        op.create_table(
            'score',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('session_id', sa.String(length=32), sa.ForeignKey('game_session.id'), nullable=False),
            sa.Column('nickname', sa.String(length=64), nullable=False),
            sa.Column('avatar', sa.String(length=16), nullable=False),
            sa.Column('level_id', sa.String(length=64), nullable=False),
            sa.Column('round_index', sa.Integer(), nullable=False),
            sa.Column('score', sa.Integer(), nullable=False),
            sa.Column('correct_count', sa.Integer(), nullable=False),
            sa.Column('time_taken', sa.Integer(), nullable=False),
            sa.Column('seconds_remaining', sa.Integer(), nullable=False),
            sa.Column('forced', sa.Boolean(), nullable=False),
            sa.Column('timestamp', sa.Float(), nullable=False),
            sa.UniqueConstraint('session_id', 'nickname', 'round_index', name='uq_score_session_player_round'),
        )
        op.create_index('ix_score_session_id', 'score', ['session_id'])

    if 'custom_level' not in existing_tables:
        op.create_table(
            'custom_level',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('title', sa.String(length=200), nullable=False),
            sa.Column('correct_order', sa.Text(), nullable=False),
            sa.Column('author_id', sa.Integer(), sa.ForeignKey('instructor.id'), nullable=True),
            sa.Column('created_at', sa.Float(), nullable=False),
        )


def downgrade():
    op.drop_table('custom_level')
    op.drop_index('ix_score_session_id', table_name='score')
    op.drop_table('score')
    op.drop_index('ix_player_session_id', table_name='player')
    op.drop_table('player')
    op.drop_table('game_session')
    op.drop_index('ix_instructor_username', table_name='instructor')
    op.drop_table('instructor')
