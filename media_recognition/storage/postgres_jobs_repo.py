"""Postgres-backed job registry using SQLAlchemy."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from media_recognition.core.database import require_session_factory
from media_recognition.errors import UnknownJobError
from media_recognition.jobs.models import TERMINAL_STATUSES, AnalysisJobRecord, AnalysisType, JobStatus, ensure_analysis_type
from media_recognition.schema.jobs import AnalysisJob
from media_recognition.storage.jobs_repo import JobRegistry

logger = logging.getLogger(__name__)


def _now_iso() -> str:
  return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


class PostgresJobRegistry(JobRegistry):
  """Persist provider job correlation rows to the shared database."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or require_session_factory()

  async def register(self, job_id: str, media_id: int, analysis_type: AnalysisType, *, client_token: str | None = None) -> AnalysisJobRecord:
    analysis_type = ensure_analysis_type(analysis_type)
    async with self._session_factory() as session:
      row = await self._find_in_session(session, job_id)
      if row is None:
        now = _now_iso()
        row = AnalysisJob(job_id=job_id, media_id=media_id, analysis_type=analysis_type, status="pending", client_token=client_token, created_at=now, updated_at=now)
        session.add(row)
        try:
          await session.commit()
        except IntegrityError:
          # Another delivery registered the same job id first; fall through to the update path.
          await session.rollback()
          row = await self._find_in_session(session, job_id)
          if row is None:
            raise
          self._retarget(row, media_id=media_id, analysis_type=analysis_type, client_token=client_token)
          await session.commit()
      else:
        self._retarget(row, media_id=media_id, analysis_type=analysis_type, client_token=client_token)
        await session.commit()
      await session.refresh(row)
      logger.info("Registered analysis job %s media_id=%s type=%s sequence=%s", job_id, media_id, analysis_type, row.id)
      return self._model_to_record(row)

  async def resolve(self, job_id: str) -> tuple[int, AnalysisType]:
    record = await self.get_job(job_id)
    return record.media_id, record.analysis_type

  async def get_job(self, job_id: str) -> AnalysisJobRecord:
    async with self._session_factory() as session:
      row = await self._find_in_session(session, job_id)
      if row is None:
        raise UnknownJobError(job_id)
      return self._model_to_record(row)

  async def mark_resolved(self, job_id: str, status: JobStatus, *, error: str | None = None) -> AnalysisJobRecord:
    if status not in TERMINAL_STATUSES:
      raise ValueError(f"mark_resolved expects a terminal status, got {status!r}")
    async with self._session_factory() as session:
      stmt = select(AnalysisJob).where(AnalysisJob.job_id == job_id).with_for_update().limit(1)
      row = (await session.execute(stmt)).scalar_one_or_none()
      if row is None:
        raise UnknownJobError(job_id)
      if row.status in TERMINAL_STATUSES:
        return self._model_to_record(row)
      now = _now_iso()
      row.status = status
      row.error = error
      row.updated_at = now
      row.completed_at = now
      await session.commit()
      await session.refresh(row)
      return self._model_to_record(row)

  async def _find_in_session(self, session: AsyncSession, job_id: str) -> AnalysisJob | None:
    stmt = select(AnalysisJob).where(AnalysisJob.job_id == job_id).limit(1)
    return (await session.execute(stmt)).scalar_one_or_none()

  def _retarget(self, row: AnalysisJob, *, media_id: int, analysis_type: str, client_token: str | None) -> None:
    row.media_id = media_id
    row.analysis_type = analysis_type
    if client_token is not None:
      row.client_token = client_token
    row.updated_at = _now_iso()

  def _model_to_record(self, row: AnalysisJob) -> AnalysisJobRecord:
    return AnalysisJobRecord(
      job_id=row.job_id,
      media_id=int(row.media_id),
      analysis_type=ensure_analysis_type(row.analysis_type),
      status=row.status,  # type: ignore[arg-type]
      sequence=int(row.id),
      created_at=row.created_at,
      updated_at=row.updated_at,
      client_token=row.client_token,
      completed_at=row.completed_at,
      error=row.error,
    )
