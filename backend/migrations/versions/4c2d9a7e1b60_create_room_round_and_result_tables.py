"""create room, player, round, submission and game_result tables

Revision ID: 4c2d9a7e1b60
Revises:
Create Date: 2026-10-16 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c2d9a7e1b60'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'room',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=8), nullable=False),
        sa.Column('host_token_hash', sa.String(length=128), nullable=True),
        sa.Column('game_mode', sa.String(length=16), nullable=False),
        sa.Column('total_rounds', sa.Integer(), nullable=False),
        sa.Column('round_duration', sa.Integer(), nullable=False),
        sa.Column('current_round', sa.Integer(), nullable=False),
        sa.Column('phase', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.Float(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('room') as batch_op:
        batch_op.create_index(batch_op.f('ix_room_code'), ['code'], unique=True)

    op.create_table(
        'player',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('room_id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.String(length=64), nullable=False),
        sa.Column('display_name', sa.String(length=64), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('last_round_cents', sa.Integer(), nullable=False),
        sa.Column('last_words', sa.Text(), nullable=True),
        sa.Column('joined_at_ms', sa.BigInteger(), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['room_id'], ['room.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('room_id', 'session_id', name='uq_player_room_session'),
    )
    with op.batch_alter_table('player') as batch_op:
        batch_op.create_index(batch_op.f('ix_player_room_id'), ['room_id'], unique=False)

    op.create_table(
        'round',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('room_id', sa.Integer(), nullable=False),
        sa.Column('number', sa.Integer(), nullable=False),
        sa.Column('prompt', sa.Text(), nullable=False),
        sa.Column('started_at_ms', sa.BigInteger(), nullable=False),
        sa.Column('duration_sec', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['room_id'], ['room.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('room_id', 'number', name='uq_round_room_number'),
    )
    with op.batch_alter_table('round') as batch_op:
        batch_op.create_index(batch_op.f('ix_round_room_id'), ['room_id'], unique=False)

    op.create_table(
        'submission',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('round_id', sa.Integer(), nullable=False),
        sa.Column('player_id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.String(length=64), nullable=False),
        sa.Column('display_name', sa.String(length=64), nullable=False),
        sa.Column('word', sa.String(length=64), nullable=False),
        sa.Column('slot', sa.String(length=64), nullable=False),
        sa.Column('submitted_at_ms', sa.BigInteger(), nullable=False),
        sa.ForeignKeyConstraint(['round_id'], ['round.id']),
        sa.ForeignKeyConstraint(['player_id'], ['player.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('round_id', 'session_id', 'slot', name='uq_submission_slot'),
    )
    with op.batch_alter_table('submission') as batch_op:
        batch_op.create_index(batch_op.f('ix_submission_round_id'), ['round_id'], unique=False)

    op.create_table(
        'game_result',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('room_code', sa.String(length=8), nullable=False),
        sa.Column('display_name', sa.String(length=64), nullable=False),
        sa.Column('total_points', sa.Float(), nullable=False),
        sa.Column('rounds_played', sa.Integer(), nullable=False),
        sa.Column('completed_at', sa.Float(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('game_result') as batch_op:
        batch_op.create_index(batch_op.f('ix_game_result_room_code'), ['room_code'], unique=False)


def downgrade():
    with op.batch_alter_table('game_result') as batch_op:
        batch_op.drop_index(batch_op.f('ix_game_result_room_code'))
    op.drop_table('game_result')
    with op.batch_alter_table('submission') as batch_op:
        batch_op.drop_index(batch_op.f('ix_submission_round_id'))
    op.drop_table('submission')
    with op.batch_alter_table('round') as batch_op:
        batch_op.drop_index(batch_op.f('ix_round_room_id'))
    op.drop_table('round')
    with op.batch_alter_table('player') as batch_op:
        batch_op.drop_index(batch_op.f('ix_player_room_id'))
    op.drop_table('player')
    with op.batch_alter_table('room') as batch_op:
        batch_op.drop_index(batch_op.f('ix_room_code'))
    op.drop_table('room')
