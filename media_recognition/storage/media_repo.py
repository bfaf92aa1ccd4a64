"""Storage interface for the media records that own analysis results."""

from __future__ import annotations

from typing import Any, Protocol

from media_recognition.jobs.models import AnalysisType, MediaRecord


class MediaRepository(Protocol):
  """Repository contract consumed by the recognition core."""

  async def create_media(self, *, source_name: str, disk: str | None = None) -> MediaRecord:
    """Persist a new media record."""

  async def get_media_by_id(self, media_id: int) -> MediaRecord | None:
    """Fetch a media record by identifier."""

  async def update_analysis_results(self, media_id: int, analysis_type: AnalysisType, result: Any, *, job_id: str | None = None, sequence: int | None = None) -> bool:
    """Atomically store one analysis type's result, leaving other types untouched.

    Returns False when the write is skipped because a newer job's result is already stored.
    Raises UnknownMediaError when the record does not exist.
    """

  async def update_job_id(self, media_id: int, job_id: str, analysis_type: AnalysisType) -> None:
    """Remember the latest provider job submitted for one analysis type."""
