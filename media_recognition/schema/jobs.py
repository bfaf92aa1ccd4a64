from __future__ import annotations

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from media_recognition.core.database import Base


class AnalysisJob(Base):
  __tablename__ = "analysis_jobs"
  __table_args__ = (Index("ix_analysis_jobs_media_type", "media_id", "analysis_type"),)

  # Autoincrement id doubles as the monotonic registration sequence.
  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  job_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
  media_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
  analysis_type: Mapped[str] = mapped_column(String, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, default="pending", index=True)
  client_token: Mapped[str | None] = mapped_column(String, nullable=True)
  error: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False)
  updated_at: Mapped[str] = mapped_column(String, nullable=False)
  completed_at: Mapped[str | None] = mapped_column(String, nullable=True)
