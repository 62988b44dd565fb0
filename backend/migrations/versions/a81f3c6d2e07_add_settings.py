"""add application settings table

Revision ID: a81f3c6d2e07
Revises: 5c2d7e91ab40
Create Date: 2026-10-19 16:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a81f3c6d2e07'
down_revision = '5c2d7e91ab40'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'setting',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('game_defaults', sa.Text(), nullable=True),
        sa.Column('refresh_interval', sa.Integer(), nullable=False, server_default='5000'),
        sa.Column('checkout_suggestions', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )


def downgrade():
    op.drop_table('setting')
