"""Create media and analysis_jobs tables.

Revision ID: 4f1c2a9d7e10
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "4f1c2a9d7e10"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  """Upgrade schema."""
  json_type = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")
  op.create_table(
    "media",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("source_name", sa.String(), nullable=False),
    sa.Column("disk", sa.String(), nullable=True),
    sa.Column("analysis_results", json_type, nullable=False),
    sa.Column("analysis_job_ids", json_type, nullable=False),
    sa.Column("analysis_applied", json_type, nullable=False),
    sa.Column("created_at", sa.String(), nullable=False),
    sa.Column("updated_at", sa.String(), nullable=False),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_table(
    "analysis_jobs",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("job_id", sa.String(), nullable=False),
    sa.Column("media_id", sa.Integer(), nullable=False),
    sa.Column("analysis_type", sa.String(), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("client_token", sa.String(), nullable=True),
    sa.Column("error", sa.Text(), nullable=True),
    sa.Column("created_at", sa.String(), nullable=False),
    sa.Column("updated_at", sa.String(), nullable=False),
    sa.Column("completed_at", sa.String(), nullable=True),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("job_id"),
  )
  op.create_index(op.f("ix_analysis_jobs_media_id"), "analysis_jobs", ["media_id"], unique=False)
  op.create_index(op.f("ix_analysis_jobs_status"), "analysis_jobs", ["status"], unique=False)
  op.create_index("ix_analysis_jobs_media_type", "analysis_jobs", ["media_id", "analysis_type"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index("ix_analysis_jobs_media_type", table_name="analysis_jobs")
  op.drop_index(op.f("ix_analysis_jobs_status"), table_name="analysis_jobs")
  op.drop_index(op.f("ix_analysis_jobs_media_id"), table_name="analysis_jobs")
  op.drop_table("analysis_jobs")
  op.drop_table("media")
