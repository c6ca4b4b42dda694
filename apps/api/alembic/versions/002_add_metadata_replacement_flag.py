"""Add is_replacement to asset_metadata for gated multiselect replace.

Revision ID: 002
Revises: 001
Create Date: 2026-10-20
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        'asset_metadata',
        sa.Column('is_replacement', sa.Boolean(), nullable=False, server_default=sa.false()),
    )


def downgrade() -> None:
    op.drop_column('asset_metadata', 'is_replacement')
