"""Orchestrates submission, notification handling and result merging."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from media_recognition.errors import ProviderError, UnknownMediaError
from media_recognition.jobs.models import AnalysisJobRecord, AnalysisType, ensure_analysis_type
from media_recognition.providers.interface import AnalysisOptions, RecognitionProvider, SourceReference
from media_recognition.services.notifications import SUBSCRIPTION_CONFIRMATION, AuthenticatedNotification
from media_recognition.services.results import AnalysisResult, ResultMerger, normalize_result
from media_recognition.services.submitter import AnalysisSubmitter
from media_recognition.storage.jobs_repo import JobRegistry
from media_recognition.storage.media_repo import MediaRepository

logger = logging.getLogger(__name__)

PROVIDER_SUCCEEDED = "SUCCEEDED"
PROVIDER_FAILED = "FAILED"


@dataclass(frozen=True)
class NotificationOutcome:
  """What handling one authenticated notification did."""

  status: str
  job_id: str | None = None
  media_id: int | None = None
  analysis_type: AnalysisType | None = None


@dataclass(frozen=True)
class JobResults:
  """Provider status of a job plus its result once the job has succeeded."""

  job_id: str
  job_status: str
  result: AnalysisResult | None = None
  applied: bool = False

  @property
  def succeeded(self) -> bool:
    return self.job_status == PROVIDER_SUCCEEDED


class RecognitionService:
  """Glue between the submitter, job registry, provider and media records."""

  def __init__(
    self,
    submitter: AnalysisSubmitter,
    registry: JobRegistry,
    media_repo: MediaRepository,
    provider: RecognitionProvider,
    merger: ResultMerger | None = None,
    *,
    http_timeout_seconds: float = 10.0,
    http_transport: httpx.AsyncBaseTransport | None = None,
  ) -> None:
    self._submitter = submitter
    self._registry = registry
    self._media_repo = media_repo
    self._provider = provider
    self._merger = merger or ResultMerger(media_repo)
    self._http_timeout_seconds = http_timeout_seconds
    self._http_transport = http_transport

  async def start_video_analysis(
    self,
    media_id: int,
    analysis_type: AnalysisType,
    options: AnalysisOptions | None = None,
    *,
    source: SourceReference | None = None,
    timeout: float | None = None,
  ) -> str:
    """Submit a stored video for asynchronous analysis and track the job."""
    analysis_type = ensure_analysis_type(analysis_type)
    source = source or await self._media_source(media_id)
    request = self._submitter.build_request(source, analysis_type, options, media_id=media_id)
    job_id = await self._submitter.dispatch(request, media_id=media_id, timeout=timeout)
    record = await self._registry.register(job_id, media_id, analysis_type, client_token=request.client_token)
    await self._media_repo.update_job_id(media_id, job_id, analysis_type)
    logger.info("Tracking %s job %s for media_id=%s sequence=%s", analysis_type, job_id, media_id, record.sequence)
    return job_id

  async def handle_notification(self, notification: AuthenticatedNotification) -> NotificationOutcome:
    """Act on a notification that already passed authentication."""
    if notification.message_type == SUBSCRIPTION_CONFIRMATION:
      await self._confirm_subscription(notification)
      return NotificationOutcome(status="subscription_confirmed")
    if not notification.is_job_completion or not notification.job_id:
      logger.info("Ignoring %s message %s", notification.message_type, notification.message_id)
      return NotificationOutcome(status="ignored")

    job = await self._registry.get_job(notification.job_id)
    if notification.analysis_type is not None and notification.analysis_type != job.analysis_type:
      logger.warning("Notification for job %s names type %s but the job was registered as %s", job.job_id, notification.analysis_type, job.analysis_type)

    if job.is_terminal:
      logger.info("Job %s already %s; acknowledging duplicate delivery", job.job_id, job.status)
      return self._outcome("duplicate", job)

    if notification.job_status != PROVIDER_SUCCEEDED:
      await self._registry.mark_resolved(job.job_id, "failed", error=notification.job_status)
      logger.warning("Analysis job %s finished with status %s", job.job_id, notification.job_status)
      return self._outcome("failed", job)

    pulled = await self._pull(job, merge=True)
    if not pulled.succeeded:
      return self._outcome("failed" if pulled.job_status == PROVIDER_FAILED else "pending", job)
    return self._outcome("completed" if pulled.applied else "stale", job)

  async def fetch_results(self, job_id: str, *, merge: bool = True) -> JobResults:
    """Fetch a registered job's result from the provider.

    Only a job the provider reports as SUCCEEDED is normalized and, unless merge is
    False, stored and marked completed. A FAILED job is marked failed; any other
    status leaves both the job and the media record untouched.
    """
    job = await self._registry.get_job(job_id)
    return await self._pull(job, merge=merge)

  async def analyze_image(
    self,
    media_id: int,
    analysis_type: AnalysisType,
    options: AnalysisOptions | None = None,
    *,
    source: SourceReference | None = None,
  ) -> AnalysisResult:
    """Run a synchronous image analysis and store its result immediately."""
    analysis_type = ensure_analysis_type(analysis_type)
    source = source or await self._media_source(media_id)
    s3_object = self._submitter.resolve_source(source)
    raw = await self._provider.detect_image(s3_object, analysis_type, self._submitter.default_options(analysis_type, options))
    result = normalize_result(analysis_type, raw)
    await self._merger.merge(media_id, analysis_type, raw)
    return result

  async def _pull(self, job: AnalysisJobRecord, *, merge: bool) -> JobResults:
    raw = await self._provider.fetch_results(job.job_id, job.analysis_type)
    job_status = str(raw.get("JobStatus") or "UNKNOWN")

    if job_status == PROVIDER_FAILED:
      await self._registry.mark_resolved(job.job_id, "failed", error=raw.get("StatusMessage") or job_status)
      logger.warning("Analysis job %s failed at the provider: %s", job.job_id, raw.get("StatusMessage"))
      return JobResults(job_id=job.job_id, job_status=job_status)
    if job_status != PROVIDER_SUCCEEDED:
      logger.info("Analysis job %s is %s; nothing to store yet", job.job_id, job_status)
      return JobResults(job_id=job.job_id, job_status=job_status)

    result = normalize_result(job.analysis_type, raw)
    if not merge:
      return JobResults(job_id=job.job_id, job_status=job_status, result=result)
    applied = await self._merger.merge(job.media_id, job.analysis_type, raw, job_id=job.job_id, sequence=job.sequence)
    await self._registry.mark_resolved(job.job_id, "completed")
    return JobResults(job_id=job.job_id, job_status=job_status, result=result, applied=applied)

  def _outcome(self, status: str, job: AnalysisJobRecord) -> NotificationOutcome:
    return NotificationOutcome(status=status, job_id=job.job_id, media_id=job.media_id, analysis_type=job.analysis_type)

  async def _media_source(self, media_id: int) -> SourceReference:
    media = await self._media_repo.get_media_by_id(media_id)
    if media is None:
      raise UnknownMediaError(media_id)
    return SourceReference(name=media.source_name, disk=media.disk)

  async def _confirm_subscription(self, notification: AuthenticatedNotification) -> None:
    # subscribe_url was validated as an SNS endpoint by the authenticator.
    try:
      async with httpx.AsyncClient(timeout=self._http_timeout_seconds, transport=self._http_transport, trust_env=False) as client:
        response = await client.get(str(notification.subscribe_url))
        response.raise_for_status()
    except httpx.HTTPError as exc:
      raise ProviderError("Confirming the SNS subscription failed", code="SubscriptionConfirmation", detail=str(exc)) from exc
    logger.info("Confirmed SNS subscription for topic %s", notification.topic_arn)
