"""create question and session_snapshot tables

Revision ID: 5b2e9c1d7a40
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5b2e9c1d7a40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'question' not in existing_tables:
        op.create_table(
            'question',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('locale', sa.String(length=8), nullable=False),
            sa.Column('level', sa.Integer(), nullable=False),
            sa.Column('topic', sa.String(length=64), nullable=False),
            sa.Column('question', sa.Text(), nullable=False),
            sa.Column('option_a', sa.Text(), nullable=False),
            sa.Column('option_b', sa.Text(), nullable=False),
            sa.Column('option_c', sa.Text(), nullable=False),
            sa.Column('option_d', sa.Text(), nullable=False),
            sa.Column('correct_option', sa.String(length=1), nullable=False),
            sa.Column('explanation', sa.Text(), nullable=True),
            sa.Column('image_url', sa.String(length=512), nullable=True),
            sa.Column('published', sa.Boolean(), nullable=False, server_default=sa.true()),
        )
        op.create_index('ix_question_locale', 'question', ['locale'])
        op.create_index('ix_question_level', 'question', ['level'])

    if 'session_snapshot' not in existing_tables:
        op.create_table(
            'session_snapshot',
            sa.Column('session_id', sa.String(length=64), primary_key=True),
            sa.Column('user_id', sa.String(length=128), nullable=True),
            sa.Column('status', sa.String(length=16), nullable=True),
            sa.Column('data', sa.Text(), nullable=False),
            sa.Column('created_at', sa.Float(), nullable=False),
            sa.Column('updated_at', sa.Float(), nullable=False),
            sa.Column('expires_at', sa.Float(), nullable=False),
        )
        op.create_index('ix_session_snapshot_user_id', 'session_snapshot', ['user_id'])
        op.create_index('ix_session_snapshot_expires_at', 'session_snapshot', ['expires_at'])


def downgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())
    if 'session_snapshot' in existing_tables:
        op.drop_index('ix_session_snapshot_expires_at', table_name='session_snapshot')
        op.drop_index('ix_session_snapshot_user_id', table_name='session_snapshot')
        op.drop_table('session_snapshot')
    if 'question' in existing_tables:
        op.drop_index('ix_question_level', table_name='question')
        op.drop_index('ix_question_locale', table_name='question')
        op.drop_table('question')
