"""Add a version counter to media.

Revision ID: 8b2d5e3f9a41
Revises: 4f1c2a9d7e10
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "8b2d5e3f9a41"
down_revision = "4f1c2a9d7e10"
branch_labels = None
depends_on = None


def upgrade() -> None:
  """Upgrade schema."""
  op.add_column("media", sa.Column("version", sa.Integer(), nullable=False, server_default="0"))


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_column("media", "version")
