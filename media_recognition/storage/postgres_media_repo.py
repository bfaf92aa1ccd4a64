"""Postgres-backed media repository using SQLAlchemy."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from media_recognition.core.database import require_session_factory
from media_recognition.errors import ConcurrentUpdateError, UnknownMediaError
from media_recognition.jobs.models import AnalysisType, MediaRecord, is_stale_result
from media_recognition.schema.media import Media
from media_recognition.storage.media_repo import MediaRepository

logger = logging.getLogger(__name__)

_MAX_WRITE_ATTEMPTS = 10


def _now_iso() -> str:
  return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


class PostgresMediaRepository(MediaRepository):
  """Persist media records and their per-type analysis results."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or require_session_factory()

  async def create_media(self, *, source_name: str, disk: str | None = None) -> MediaRecord:
    async with self._session_factory() as session:
      now = _now_iso()
      row = Media(source_name=source_name, disk=disk, analysis_results={}, analysis_job_ids={}, analysis_applied={}, created_at=now, updated_at=now)
      session.add(row)
      await session.commit()
      await session.refresh(row)
      return self._model_to_record(row)

  async def get_media_by_id(self, media_id: int) -> MediaRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Media, media_id)
      if row is None:
        return None
      return self._model_to_record(row)

  async def update_analysis_results(self, media_id: int, analysis_type: AnalysisType, result: Any, *, job_id: str | None = None, sequence: int | None = None) -> bool:
    def build(row: Media) -> dict[str, Any] | None:
      applied = dict(row.analysis_applied or {})
      if is_stale_result(applied.get(analysis_type), job_id=job_id, sequence=sequence):
        logger.warning("Skipping stale %s result for media_id=%s job_id=%s sequence=%s applied=%s", analysis_type, media_id, job_id, sequence, applied.get(analysis_type))
        return None
      results = dict(row.analysis_results or {})
      results[analysis_type] = result
      values: dict[str, Any] = {"analysis_results": results}
      if job_id is not None or sequence is not None:
        applied[analysis_type] = {"job_id": job_id, "sequence": sequence}
        values["analysis_applied"] = applied
      return values

    return await self._compare_and_set(media_id, build)

  async def update_job_id(self, media_id: int, job_id: str, analysis_type: AnalysisType) -> None:
    def build(row: Media) -> dict[str, Any]:
      job_ids = dict(row.analysis_job_ids or {})
      job_ids[analysis_type] = job_id
      return {"analysis_job_ids": job_ids}

    await self._compare_and_set(media_id, build)

  async def _compare_and_set(self, media_id: int, build: Callable[[Media], dict[str, Any] | None]) -> bool:
    """Apply a read-modify-write to one media row, retrying when another writer got there first.

    The update only matches the version that was read, so concurrent writers to
    different keys of the same JSON column never drop each other's changes. This holds
    on backends without row locks too. `build` returns None to skip the write.
    """
    for attempt in range(1, _MAX_WRITE_ATTEMPTS + 1):
      async with self._session_factory() as session:
        row = await session.get(Media, media_id)
        if row is None:
          raise UnknownMediaError(media_id)
        values = build(row)
        if values is None:
          await session.rollback()
          return False

        stmt = (
          update(Media)
          .where(Media.id == media_id, Media.version == row.version)
          .values(**values, version=row.version + 1, updated_at=_now_iso())
          .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        if result.rowcount == 1:
          await session.commit()
          return True
        await session.rollback()
      logger.info("Media %s changed during write attempt %s; retrying", media_id, attempt)
    raise ConcurrentUpdateError(media_id, _MAX_WRITE_ATTEMPTS)

  def _model_to_record(self, row: Media) -> MediaRecord:
    return MediaRecord(
      media_id=int(row.id),
      source_name=row.source_name,
      disk=row.disk,
      analysis_results=dict(row.analysis_results or {}),
      analysis_job_ids=dict(row.analysis_job_ids or {}),
      analysis_applied=dict(row.analysis_applied or {}),
      version=int(row.version or 0),
    )
