"""initial darts schema: users, players, matches, throws, summaries, logs

Revision ID: 5c2d7e91ab40
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c2d7e91ab40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=False),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_user_username'), 'user', ['username'], unique=True)

    op.create_table(
        'player',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('nickname', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'dart_match',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('board_id', sa.String(length=64), nullable=False),
        sa.Column('game_type', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('legs_to_win', sa.Integer(), nullable=False),
        sa.Column('current_leg', sa.Integer(), nullable=False),
        sa.Column('settings', sa.Text(), nullable=True),
        sa.Column('scores', sa.Text(), nullable=True),
        sa.Column('winner_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_autosave', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['winner_id'], ['player.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_dart_match_board_id'), 'dart_match', ['board_id'], unique=False)

    op.create_table(
        'match_player',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('match_id', sa.Integer(), nullable=False),
        sa.Column('player_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('legs_won', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['match_id'], ['dart_match.id']),
        sa.ForeignKeyConstraint(['player_id'], ['player.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('match_id', 'player_id', name='uq_match_player'),
    )
    op.create_index(op.f('ix_match_player_match_id'), 'match_player', ['match_id'], unique=False)

    op.create_table(
        'dart_throw',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('match_id', sa.Integer(), nullable=False),
        sa.Column('player_id', sa.Integer(), nullable=False),
        sa.Column('leg', sa.Integer(), nullable=False),
        sa.Column('round', sa.Integer(), nullable=False),
        sa.Column('throw_index', sa.Integer(), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('segment', sa.String(length=16), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('score_before', sa.Integer(), nullable=False),
        sa.Column('turn_start', sa.Integer(), nullable=False),
        sa.Column('remaining', sa.Integer(), nullable=False),
        sa.Column('bust', sa.Boolean(), nullable=False),
        sa.Column('game_shot', sa.Boolean(), nullable=False),
        sa.Column('corrected', sa.Boolean(), nullable=False),
        sa.Column('coordinates', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['match_id'], ['dart_match.id']),
        sa.ForeignKeyConstraint(['player_id'], ['player.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_dart_throw_match_id'), 'dart_throw', ['match_id'], unique=False)

    op.create_table(
        'match_summary',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('match_id', sa.Integer(), nullable=False),
        sa.Column('player_id', sa.Integer(), nullable=False),
        sa.Column('legs_played', sa.Integer(), nullable=False),
        sa.Column('legs_won', sa.Integer(), nullable=False),
        sa.Column('average', sa.Float(), nullable=False),
        sa.Column('first_nine_average', sa.Float(), nullable=False),
        sa.Column('checkout_percentage', sa.Float(), nullable=False),
        sa.Column('checkout_attempts', sa.Integer(), nullable=False),
        sa.Column('checkout_successes', sa.Integer(), nullable=False),
        sa.Column('highest_checkout', sa.Integer(), nullable=False),
        sa.Column('ton_plus', sa.Integer(), nullable=False),
        sa.Column('ton_forty_plus', sa.Integer(), nullable=False),
        sa.Column('ton_eighty', sa.Integer(), nullable=False),
        sa.Column('total_darts', sa.Integer(), nullable=False),
        sa.Column('darts_per_leg', sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(['match_id'], ['dart_match.id']),
        sa.ForeignKeyConstraint(['player_id'], ['player.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('match_id', 'player_id', name='uq_match_summary_player'),
    )
    op.create_index(op.f('ix_match_summary_match_id'), 'match_summary', ['match_id'], unique=False)

    op.create_table(
        'game_log',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('match_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('performed_by', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['match_id'], ['dart_match.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_game_log_match_id'), 'game_log', ['match_id'], unique=False)


def downgrade():
    op.drop_index(op.f('ix_game_log_match_id'), table_name='game_log')
    op.drop_table('game_log')
    op.drop_index(op.f('ix_match_summary_match_id'), table_name='match_summary')
    op.drop_table('match_summary')
    op.drop_index(op.f('ix_dart_throw_match_id'), table_name='dart_throw')
    op.drop_table('dart_throw')
    op.drop_index(op.f('ix_match_player_match_id'), table_name='match_player')
    op.drop_table('match_player')
    op.drop_index(op.f('ix_dart_match_board_id'), table_name='dart_match')
    op.drop_table('dart_match')
    op.drop_table('player')
    op.drop_index(op.f('ix_user_username'), table_name='user')
    op.drop_table('user')
