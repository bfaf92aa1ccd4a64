"""Storage interfaces for analysis job correlation."""

from __future__ import annotations

from typing import Protocol

from media_recognition.jobs.models import AnalysisJobRecord, AnalysisType, JobStatus


class JobRegistry(Protocol):
  """Maps provider job ids back to the media record and analysis type they belong to.

  Submission and webhook handling may run in different processes, so implementations
  must be backed by shared durable storage.
  """

  async def register(self, job_id: str, media_id: int, analysis_type: AnalysisType, *, client_token: str | None = None) -> AnalysisJobRecord:
    """Record a freshly submitted job as pending. Re-registering a job id overwrites its target."""

  async def resolve(self, job_id: str) -> tuple[int, AnalysisType]:
    """Return (media id, analysis type) or raise UnknownJobError."""

  async def get_job(self, job_id: str) -> AnalysisJobRecord:
    """Return the full job record or raise UnknownJobError."""

  async def mark_resolved(self, job_id: str, status: JobStatus, *, error: str | None = None) -> AnalysisJobRecord:
    """Move a pending job to a terminal status; terminal jobs are returned unchanged."""
