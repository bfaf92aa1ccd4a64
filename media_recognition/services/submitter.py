"""Builds provider submission requests and dispatches them."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace

from media_recognition.config import RecognitionConfig
from media_recognition.errors import ConfigurationError, ProviderError
from media_recognition.jobs.models import AnalysisType, ensure_analysis_type
from media_recognition.providers.interface import AnalysisOptions, RecognitionProvider, SourceReference, SubmissionRequest
from media_recognition.utils.ids import generate_client_token

logger = logging.getLogger(__name__)


class AnalysisSubmitter:
  """Start asynchronous analyses for stored media.

  The caller registers the returned job id with the job registry; nothing here is
  persisted and no retries are attempted.
  """

  def __init__(self, provider: RecognitionProvider, config: RecognitionConfig) -> None:
    self._provider = provider
    self._config = config

  def resolve_source(self, source: SourceReference) -> dict[str, str]:
    """Map a media source onto the provider's S3 object reference."""
    bucket = self._config.bucket_for(source.disk)
    if not bucket:
      raise ConfigurationError(f"No storage bucket configured for disk {source.disk or self._config.disk!r}.")
    return {"Bucket": bucket, "Name": source.name}

  def default_options(self, analysis_type: AnalysisType, options: AnalysisOptions | None = None) -> AnalysisOptions:
    options = options or AnalysisOptions()
    if options.min_confidence is None and analysis_type in {"labels", "moderation"}:
      return replace(options, min_confidence=self._config.min_confidence)
    return options

  def build_request(self, source: SourceReference, analysis_type: AnalysisType, options: AnalysisOptions | None = None, *, media_id: int) -> SubmissionRequest:
    """Assemble the provider request, failing fast on missing configuration."""
    analysis_type = ensure_analysis_type(analysis_type)
    s3_object = self.resolve_source(source)
    if not self._config.iam_arn:
      raise ConfigurationError("No IAM role ARN configured for the notification channel.")
    if not self._config.sns_topic_arn:
      raise ConfigurationError("No SNS topic ARN configured for the notification channel.")

    token = generate_client_token(analysis_type, media_id)
    return SubmissionRequest(
      analysis_type=analysis_type,
      source=s3_object,
      notification_channel={"RoleArn": self._config.iam_arn, "SNSTopicArn": self._config.sns_topic_arn},
      client_token=token,
      # The tag mirrors the token so notifications carry the (type, media) pair.
      job_tag=token,
      options=self.default_options(analysis_type, options),
    )

  async def submit(self, source: SourceReference, analysis_type: AnalysisType, options: AnalysisOptions | None = None, *, media_id: int, timeout: float | None = None) -> str:
    """Start one analysis and return the provider job id."""
    request = self.build_request(source, analysis_type, options, media_id=media_id)
    return await self.dispatch(request, media_id=media_id, timeout=timeout)

  async def dispatch(self, request: SubmissionRequest, *, media_id: int, timeout: float | None = None) -> str:
    try:
      job_id = await asyncio.wait_for(self._provider.start_analysis(request), timeout=timeout)
    except asyncio.TimeoutError as exc:
      raise ProviderError(f"Submitting {request.analysis_type} analysis timed out after {timeout}s", code="Timeout") from exc
    logger.info("Submitted %s analysis for media_id=%s job_id=%s", request.analysis_type, media_id, job_id)
    return job_id
