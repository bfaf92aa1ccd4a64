from __future__ import annotations

from typing import Any

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from media_recognition.core.database import Base, JSONType


class Media(Base):
  __tablename__ = "media"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  source_name: Mapped[str] = mapped_column(String, nullable=False)
  disk: Mapped[str | None] = mapped_column(String, nullable=True)
  # analysis type -> normalized provider result
  analysis_results: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
  # analysis type -> most recently submitted provider job id
  analysis_job_ids: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
  # analysis type -> {"job_id", "sequence"} of the job whose result is stored
  analysis_applied: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
  # bumped on every write; guards read-modify-write of the JSON columns
  version: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
  created_at: Mapped[str] = mapped_column(String, nullable=False)
  updated_at: Mapped[str] = mapped_column(String, nullable=False)
