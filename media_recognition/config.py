"""Application configuration loaded from environment variables."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

from media_recognition.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)


@dataclass(frozen=True)
class Settings:
  """Typed settings for the media recognition service."""

  environment: str
  debug: bool
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  aws_region: str
  rekognition_endpoint_url: str | None
  provider_timeout_seconds: int
  disk: str
  bucket_lookup: dict[str, str] = field(hash=False)
  iam_arn: str | None
  sns_topic_arn: str | None
  min_confidence: float
  webhook_max_age_seconds: int
  webhook_clock_skew_seconds: int
  webhook_verify_topic: bool


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


@dataclass(frozen=True)
class RecognitionConfig:
  """Explicit configuration handed to the analysis submitter at construction time."""

  disk: str
  bucket_lookup: dict[str, str] = field(hash=False)
  iam_arn: str | None = None
  sns_topic_arn: str | None = None
  min_confidence: float = 50.0

  def bucket_for(self, disk: str | None) -> str | None:
    """Return the bucket configured for a disk, falling back to the default disk."""
    bucket = self.bucket_lookup.get(disk or self.disk)
    if bucket is None or not str(bucket).strip():
      return None
    return str(bucket).strip()


@dataclass(frozen=True)
class WebhookConfig:
  """Explicit configuration handed to the webhook authenticator."""

  sns_topic_arn: str | None = None
  verify_topic: bool = True
  max_age_seconds: int = 3600
  clock_skew_seconds: int = 300


def _parse_json_dict(raw: str | None, default: dict[str, Any]) -> dict[str, Any]:
  if not raw:
    return default
  try:
    parsed = json.loads(raw)
  except json.JSONDecodeError:
    return default
  if not isinstance(parsed, dict):
    return default
  return parsed


def _parse_bool(raw: str | None, *, default: bool = False) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return default

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _bucket_lookup(disk: str) -> dict[str, str]:
  """Build the disk to bucket mapping from a JSON map plus the single-bucket shortcut."""
  lookup = {str(key): str(value) for key, value in _parse_json_dict(os.getenv("MEDIA_RECOGNITION_BUCKETS"), {}).items()}
  # A single bucket variable configures the default disk.
  single_bucket = _optional_str(os.getenv("MEDIA_RECOGNITION_BUCKET"))
  if single_bucket and disk not in lookup:
    lookup[disk] = single_bucket
  return lookup


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("MEDIA_RECOGNITION_ENV", "development").lower()
  debug = _parse_bool(os.getenv("MEDIA_RECOGNITION_DEBUG"))

  log_max_bytes = _positive_int("MEDIA_RECOGNITION_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("MEDIA_RECOGNITION_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("MEDIA_RECOGNITION_LOG_BACKUP_COUNT must be zero or a positive integer.")

  min_confidence = float(os.getenv("MEDIA_RECOGNITION_MIN_CONFIDENCE", "50"))
  if not 0 <= min_confidence <= 100:
    raise ValueError("MEDIA_RECOGNITION_MIN_CONFIDENCE must be between 0 and 100.")

  webhook_clock_skew_seconds = int(os.getenv("MEDIA_RECOGNITION_WEBHOOK_CLOCK_SKEW_SECONDS", "300"))
  if webhook_clock_skew_seconds < 0:
    raise ValueError("MEDIA_RECOGNITION_WEBHOOK_CLOCK_SKEW_SECONDS must be zero or a positive integer.")

  disk = (os.getenv("MEDIA_RECOGNITION_DISK") or "s3").strip()

  return Settings(
    environment=environment,
    debug=debug,
    log_dir=(os.getenv("MEDIA_RECOGNITION_LOG_DIR") or "./logs").strip(),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("MEDIA_RECOGNITION_LOG_HTTP_4XX")),
    pg_dsn=os.getenv("MEDIA_RECOGNITION_PG_DSN") or os.getenv("DATABASE_URL"),
    pg_connect_timeout=_positive_int("MEDIA_RECOGNITION_PG_CONNECT_TIMEOUT", "5"),
    aws_region=(os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION") or "us-east-1").strip(),
    rekognition_endpoint_url=_optional_str(os.getenv("MEDIA_RECOGNITION_REKOGNITION_ENDPOINT_URL")),
    provider_timeout_seconds=_positive_int("MEDIA_RECOGNITION_PROVIDER_TIMEOUT_SECONDS", "30"),
    disk=disk,
    bucket_lookup=_bucket_lookup(disk),
    iam_arn=_optional_str(os.getenv("MEDIA_RECOGNITION_IAM_ARN")),
    sns_topic_arn=_optional_str(os.getenv("MEDIA_RECOGNITION_SNS_TOPIC_ARN")),
    min_confidence=min_confidence,
    webhook_max_age_seconds=_positive_int("MEDIA_RECOGNITION_WEBHOOK_MAX_AGE_SECONDS", "3600"),
    webhook_clock_skew_seconds=webhook_clock_skew_seconds,
    webhook_verify_topic=_parse_bool(os.getenv("MEDIA_RECOGNITION_WEBHOOK_VERIFY_TOPIC"), default=True),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring provider configuration."""
  # Keep database configuration isolated so migrations don't require AWS env vars.
  debug = _parse_bool(os.getenv("MEDIA_RECOGNITION_DEBUG"))
  pg_connect_timeout = _positive_int("MEDIA_RECOGNITION_PG_CONNECT_TIMEOUT", "5")
  pg_dsn = os.getenv("MEDIA_RECOGNITION_PG_DSN") or os.getenv("DATABASE_URL")
  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)


def build_recognition_config(settings: Settings) -> RecognitionConfig:
  """Project the submitter-facing fields out of the process settings."""
  return RecognitionConfig(disk=settings.disk, bucket_lookup=dict(settings.bucket_lookup), iam_arn=settings.iam_arn, sns_topic_arn=settings.sns_topic_arn, min_confidence=settings.min_confidence)


def build_webhook_config(settings: Settings) -> WebhookConfig:
  """Project the authenticator-facing fields out of the process settings."""
  return WebhookConfig(
    sns_topic_arn=settings.sns_topic_arn,
    verify_topic=settings.webhook_verify_topic,
    max_age_seconds=settings.webhook_max_age_seconds,
    clock_skew_seconds=settings.webhook_clock_skew_seconds,
  )
