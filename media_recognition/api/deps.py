"""Process-wide service wiring for the HTTP layer."""

from __future__ import annotations

from functools import lru_cache

from media_recognition.config import build_recognition_config, build_webhook_config, get_settings
from media_recognition.providers.rekognition import RekognitionProvider
from media_recognition.services.notifications import SigningCertificateStore, WebhookAuthenticator
from media_recognition.services.recognition import RecognitionService
from media_recognition.services.submitter import AnalysisSubmitter
from media_recognition.storage.postgres_jobs_repo import PostgresJobRegistry
from media_recognition.storage.postgres_media_repo import PostgresMediaRepository


@lru_cache(maxsize=1)
def get_webhook_authenticator() -> WebhookAuthenticator:
  """Share one authenticator so the signing certificate cache survives across requests."""
  settings = get_settings()
  return WebhookAuthenticator(build_webhook_config(settings), certificates=SigningCertificateStore(timeout_seconds=settings.provider_timeout_seconds))


@lru_cache(maxsize=1)
def get_recognition_service() -> RecognitionService:
  settings = get_settings()
  provider = RekognitionProvider(settings)
  submitter = AnalysisSubmitter(provider, build_recognition_config(settings))
  return RecognitionService(
    submitter,
    PostgresJobRegistry(),
    PostgresMediaRepository(),
    provider,
    http_timeout_seconds=settings.provider_timeout_seconds,
  )
