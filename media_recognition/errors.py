"""Error taxonomy shared by the submitter, registry, merger and webhook intake."""

from __future__ import annotations


class MediaRecognitionError(Exception):
  """Base class for recognition failures surfaced to callers."""


class ConfigurationError(MediaRecognitionError):
  """Required setup (bucket, role ARN, topic ARN) is missing."""


class ProviderError(MediaRecognitionError):
  """A call to the recognition provider failed."""

  def __init__(self, message: str, *, code: str | None = None, detail: str | None = None) -> None:
    super().__init__(message)
    self.code = code
    self.detail = detail


class UnknownJobError(MediaRecognitionError):
  """A provider job id was never registered by this service."""

  def __init__(self, job_id: str) -> None:
    super().__init__(f"Unknown analysis job: {job_id}")
    self.job_id = job_id


class UnknownMediaError(MediaRecognitionError):
  """The media record targeted by an operation does not exist."""

  def __init__(self, media_id: int) -> None:
    super().__init__(f"Unknown media record: {media_id}")
    self.media_id = media_id


class WebhookAuthenticationError(MediaRecognitionError):
  """An inbound notification failed parsing or signature verification.

  Only raised inside the authenticator; callers receive a `WebhookRejection`.
  """


class ConcurrentUpdateError(MediaRecognitionError):
  """A media record kept changing under a write until the retries ran out."""

  def __init__(self, media_id: int, attempts: int) -> None:
    super().__init__(f"Media record {media_id} changed concurrently {attempts} times in a row")
    self.media_id = media_id
    self.attempts = attempts
