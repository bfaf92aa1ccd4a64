"""AWS Rekognition provider backed by boto3."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError
from starlette.concurrency import run_in_threadpool

from media_recognition.config import Settings
from media_recognition.errors import ProviderError
from media_recognition.jobs.models import AnalysisType
from media_recognition.providers.interface import AnalysisOptions, RecognitionProvider, SubmissionRequest

logger = logging.getLogger(__name__)

# analysis type -> (start operation, get operation, result list key)
_VIDEO_OPERATIONS: dict[str, tuple[str, str, str]] = {
  "labels": ("start_label_detection", "get_label_detection", "Labels"),
  "faces": ("start_face_detection", "get_face_detection", "Faces"),
  "moderation": ("start_content_moderation", "get_content_moderation", "ModerationLabels"),
  "ocr": ("start_text_detection", "get_text_detection", "TextDetections"),
}

# analysis type -> (detect operation, result list key)
_IMAGE_OPERATIONS: dict[str, tuple[str, str]] = {
  "labels": ("detect_labels", "Labels"),
  "faces": ("detect_faces", "FaceDetails"),
  "moderation": ("detect_moderation_labels", "ModerationLabels"),
  "ocr": ("detect_text", "TextDetections"),
}

GET_PAGE_SIZE = 1000


def _provider_error(operation: str, exc: Exception) -> ProviderError:
  """Translate botocore failures into the service error type."""
  if isinstance(exc, ClientError):
    error = exc.response.get("Error", {})
    code = error.get("Code")
    detail = error.get("Message") or str(exc)
    return ProviderError(f"Rekognition {operation} failed: {code}", code=code, detail=detail)
  return ProviderError(f"Rekognition {operation} failed", detail=str(exc))


class RekognitionProvider(RecognitionProvider):
  """Start, poll and run Rekognition analyses."""

  def __init__(self, settings: Settings, *, client: Any | None = None) -> None:
    if client is None:
      session = boto3.session.Session()
      # Retries belong to the calling layer, so the SDK makes exactly one attempt.
      config = Config(connect_timeout=settings.provider_timeout_seconds, read_timeout=settings.provider_timeout_seconds, retries={"max_attempts": 1, "mode": "standard"})
      client = session.client("rekognition", region_name=settings.aws_region, endpoint_url=settings.rekognition_endpoint_url, config=config)
    self._client = client

  async def start_analysis(self, request: SubmissionRequest) -> str:
    start_operation, _, _ = _VIDEO_OPERATIONS[request.analysis_type]
    params = self._start_params(request)
    response = await self._call(start_operation, **params)
    job_id = response.get("JobId")
    if not job_id:
      raise ProviderError(f"Rekognition {start_operation} returned no JobId")
    logger.info("Started %s job %s token=%s", request.analysis_type, job_id, request.client_token)
    return str(job_id)

  async def fetch_results(self, job_id: str, analysis_type: AnalysisType) -> dict[str, Any]:
    _, get_operation, items_key = _VIDEO_OPERATIONS[analysis_type]
    response = await self._call(get_operation, JobId=job_id, MaxResults=GET_PAGE_SIZE)
    merged = dict(response)
    items = list(response.get(items_key) or [])
    next_token = response.get("NextToken")
    # Results are paginated; concatenate every page into a single response.
    while next_token:
      page = await self._call(get_operation, JobId=job_id, MaxResults=GET_PAGE_SIZE, NextToken=next_token)
      items.extend(page.get(items_key) or [])
      next_token = page.get("NextToken")
    merged[items_key] = items
    merged.pop("NextToken", None)
    merged.pop("ResponseMetadata", None)
    return merged

  async def detect_image(self, source: dict[str, str], analysis_type: AnalysisType, options: AnalysisOptions) -> dict[str, Any]:
    operation, _ = _IMAGE_OPERATIONS[analysis_type]
    params: dict[str, Any] = {"Image": {"S3Object": dict(source)}}
    if analysis_type == "labels":
      params["MaxLabels"] = options.max_results
      if options.min_confidence is not None:
        params["MinConfidence"] = options.min_confidence
    elif analysis_type == "faces":
      params["Attributes"] = [options.face_attributes]
    elif analysis_type == "moderation":
      if options.min_confidence is not None:
        params["MinConfidence"] = options.min_confidence
    elif options.text_filters:
      params["Filters"] = options.text_filters
    response = await self._call(operation, **params)
    response.pop("ResponseMetadata", None)
    return response

  def _start_params(self, request: SubmissionRequest) -> dict[str, Any]:
    params: dict[str, Any] = {
      "Video": {"S3Object": dict(request.source)},
      "NotificationChannel": dict(request.notification_channel),
      "ClientRequestToken": request.client_token,
      "JobTag": request.job_tag,
    }
    options = request.options
    if request.analysis_type in {"labels", "moderation"} and options.min_confidence is not None:
      params["MinConfidence"] = options.min_confidence
    elif request.analysis_type == "faces":
      params["FaceAttributes"] = options.face_attributes
    elif request.analysis_type == "ocr" and options.text_filters:
      params["Filters"] = options.text_filters
    return params

  async def _call(self, operation: str, **params: Any) -> dict[str, Any]:
    method: Callable[..., dict[str, Any]] = getattr(self._client, operation)
    try:
      return dict(await run_in_threadpool(method, **params))
    except (ClientError, BotoCoreError) as exc:
      logger.error("Rekognition %s failed: %s", operation, exc)
      raise _provider_error(operation, exc) from exc
