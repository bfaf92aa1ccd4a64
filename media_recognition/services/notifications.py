"""Authentication of inbound SNS notifications announcing finished analysis jobs.

This is the only trust boundary in front of result writes: nothing in a payload is
acted on until its signature has been verified against the SNS signing certificate.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import urlparse

import httpx
from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from media_recognition.config import WebhookConfig
from media_recognition.errors import WebhookAuthenticationError
from media_recognition.jobs.models import ANALYSIS_TYPES, AnalysisType
from media_recognition.utils.ids import parse_client_token

logger = logging.getLogger(__name__)

SNS_HOST_PATTERN = re.compile(r"^sns\.[a-zA-Z0-9\-]{3,}\.amazonaws\.com(\.cn)?$")

NOTIFICATION = "Notification"
SUBSCRIPTION_CONFIRMATION = "SubscriptionConfirmation"
UNSUBSCRIBE_CONFIRMATION = "UnsubscribeConfirmation"

_SIGNED_KEYS: dict[str, tuple[str, ...]] = {
  NOTIFICATION: ("Message", "MessageId", "Subject", "Timestamp", "TopicArn", "Type"),
  SUBSCRIPTION_CONFIRMATION: ("Message", "MessageId", "SubscribeURL", "Timestamp", "Token", "TopicArn", "Type"),
  UNSUBSCRIBE_CONFIRMATION: ("Message", "MessageId", "SubscribeURL", "Timestamp", "Token", "TopicArn", "Type"),
}
_OPTIONAL_SIGNED_KEYS = frozenset({"Subject"})
_REQUIRED_KEYS = ("Type", "MessageId", "TopicArn", "Timestamp", "Message", "Signature", "SignatureVersion", "SigningCertURL")

_SIGNATURE_HASHES: dict[str, Callable[[], hashes.HashAlgorithm]] = {
  "1": hashes.SHA1,
  "2": hashes.SHA256,
}

# Rekognition start API -> analysis type
_API_ANALYSIS_TYPES: dict[str, AnalysisType] = {
  "StartLabelDetection": "labels",
  "StartFaceDetection": "faces",
  "StartContentModeration": "moderation",
  "StartTextDetection": "ocr",
}


@dataclass(frozen=True)
class AuthenticatedNotification:
  """A notification whose signature, origin and freshness have been verified."""

  message_type: str
  message_id: str
  topic_arn: str
  timestamp: datetime
  job_id: str | None = None
  job_status: str | None = None
  analysis_type: AnalysisType | None = None
  api: str | None = None
  job_tag: str | None = None
  subscribe_url: str | None = None

  @property
  def is_job_completion(self) -> bool:
    return self.message_type == NOTIFICATION


@dataclass(frozen=True)
class WebhookRejection:
  """Generic rejection; the reason is for server logs only."""

  reason: str


AuthenticationResult = AuthenticatedNotification | WebhookRejection


def validate_sns_url(url: str | None, *, require_pem: bool = False) -> str:
  """Accept only https URLs served from the SNS domain."""
  if not url:
    raise WebhookAuthenticationError("missing URL")
  parsed = urlparse(url)
  if parsed.scheme != "https":
    raise WebhookAuthenticationError("URL is not https")
  if not SNS_HOST_PATTERN.match(parsed.hostname or ""):
    raise WebhookAuthenticationError("URL host is not an SNS endpoint")
  if require_pem and not parsed.path.endswith(".pem"):
    raise WebhookAuthenticationError("certificate URL is not a .pem file")
  return url


def build_string_to_sign(envelope: dict[str, Any]) -> bytes:
  """Reconstruct the canonical byte sequence SNS signs for a message type."""
  message_type = envelope.get("Type")
  keys = _SIGNED_KEYS.get(str(message_type))
  if keys is None:
    raise WebhookAuthenticationError(f"unsupported message type {message_type!r}")
  parts: list[str] = []
  for key in keys:
    # A JSON null counts as absent; it must never be signed as "None".
    if envelope.get(key) is None:
      if key in _OPTIONAL_SIGNED_KEYS:
        continue
      raise WebhookAuthenticationError(f"missing signed field {key}")
    parts.append(f"{key}\n{envelope[key]}\n")
  return "".join(parts).encode("utf-8")


def _parse_timestamp(raw: Any) -> datetime:
  try:
    parsed = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
  except ValueError as exc:
    raise WebhookAuthenticationError("unparseable timestamp") from exc
  if parsed.tzinfo is None:
    parsed = parsed.replace(tzinfo=UTC)
  return parsed


class SigningCertificateStore:
  """Fetch and cache SNS signing certificates by URL."""

  def __init__(self, *, timeout_seconds: float = 10.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
    self._timeout_seconds = timeout_seconds
    self._transport = transport
    self._cache: dict[str, x509.Certificate] = {}

  async def get(self, url: str) -> x509.Certificate:
    cached = self._cache.get(url)
    if cached is not None:
      return cached

    try:
      # Never follow redirects or trust proxy env vars for trust material.
      async with httpx.AsyncClient(timeout=self._timeout_seconds, transport=self._transport, trust_env=False, follow_redirects=False) as client:
        response = await client.get(url)
        response.raise_for_status()
    except httpx.HTTPError as exc:
      raise WebhookAuthenticationError(f"could not fetch signing certificate: {exc}") from exc

    try:
      certificate = x509.load_pem_x509_certificate(response.content)
    except ValueError as exc:
      raise WebhookAuthenticationError("signing certificate is not valid PEM") from exc

    self._cache[url] = certificate
    return certificate


class WebhookAuthenticator:
  """Verify SNS envelopes and extract the job completion marker they carry.

  States: received -> signature-checked -> accepted | rejected. Rejections carry no
  detail beyond a log-only reason.
  """

  def __init__(self, config: WebhookConfig, *, certificates: SigningCertificateStore | None = None, clock: Callable[[], datetime] | None = None) -> None:
    self._config = config
    self._certificates = certificates or SigningCertificateStore()
    self._clock = clock or (lambda: datetime.now(UTC))

  async def authenticate(self, raw_body: bytes | str, *, message_type_header: str | None = None) -> AuthenticationResult:
    try:
      envelope = self._parse_envelope(raw_body)
      if message_type_header is not None and message_type_header != envelope["Type"]:
        raise WebhookAuthenticationError("message type header does not match payload")
      self._check_topic(envelope)
      timestamp = self._check_timestamp(envelope)
      cert_url = validate_sns_url(envelope["SigningCertURL"], require_pem=True)
      certificate = await self._certificates.get(cert_url)
      self._verify_signature(envelope, certificate)
      # Payload fields are only inspected past this point.
      return self._accept(envelope, timestamp)
    except WebhookAuthenticationError as exc:
      logger.warning("Rejected webhook notification: %s", exc)
      return WebhookRejection(reason=str(exc))

  def _parse_envelope(self, raw_body: bytes | str) -> dict[str, Any]:
    try:
      envelope = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
      raise WebhookAuthenticationError("payload is not JSON") from exc
    if not isinstance(envelope, dict):
      raise WebhookAuthenticationError("payload is not a JSON object")
    missing = [key for key in _REQUIRED_KEYS if not isinstance(envelope.get(key), str)]
    if missing:
      raise WebhookAuthenticationError(f"missing fields {missing}")
    return envelope

  def _check_topic(self, envelope: dict[str, Any]) -> None:
    if not self._config.verify_topic or not self._config.sns_topic_arn:
      return
    if envelope["TopicArn"] != self._config.sns_topic_arn:
      raise WebhookAuthenticationError("topic ARN is not the configured topic")

  def _check_timestamp(self, envelope: dict[str, Any]) -> datetime:
    timestamp = _parse_timestamp(envelope["Timestamp"])
    now = self._clock()
    if timestamp - now > timedelta(seconds=self._config.clock_skew_seconds):
      raise WebhookAuthenticationError("timestamp is in the future")
    if now - timestamp > timedelta(seconds=self._config.max_age_seconds):
      raise WebhookAuthenticationError("timestamp is too old")
    return timestamp

  def _verify_signature(self, envelope: dict[str, Any], certificate: x509.Certificate) -> None:
    hash_factory = _SIGNATURE_HASHES.get(envelope["SignatureVersion"])
    if hash_factory is None:
      raise WebhookAuthenticationError(f"unsupported signature version {envelope['SignatureVersion']!r}")

    now = self._clock()
    if not (certificate.not_valid_before_utc <= now <= certificate.not_valid_after_utc):
      raise WebhookAuthenticationError("signing certificate is outside its validity window")

    public_key = certificate.public_key()
    if not isinstance(public_key, rsa.RSAPublicKey):
      raise WebhookAuthenticationError("signing certificate does not carry an RSA key")

    try:
      signature = base64.b64decode(envelope["Signature"], validate=True)
    except (binascii.Error, ValueError) as exc:
      raise WebhookAuthenticationError("signature is not base64") from exc

    try:
      public_key.verify(signature, build_string_to_sign(envelope), padding.PKCS1v15(), hash_factory())
    except InvalidSignature as exc:
      raise WebhookAuthenticationError("signature mismatch") from exc

  def _accept(self, envelope: dict[str, Any], timestamp: datetime) -> AuthenticatedNotification:
    message_type = envelope["Type"]
    if message_type != NOTIFICATION:
      return AuthenticatedNotification(
        message_type=message_type,
        message_id=envelope["MessageId"],
        topic_arn=envelope["TopicArn"],
        timestamp=timestamp,
        subscribe_url=validate_sns_url(envelope.get("SubscribeURL")),
      )

    try:
      message = json.loads(envelope["Message"])
    except json.JSONDecodeError as exc:
      raise WebhookAuthenticationError("notification message is not JSON") from exc
    if not isinstance(message, dict) or not message.get("JobId") or not message.get("Status"):
      raise WebhookAuthenticationError("notification message carries no job marker")

    api = message.get("API")
    job_tag = message.get("JobTag")
    return AuthenticatedNotification(
      message_type=message_type,
      message_id=envelope["MessageId"],
      topic_arn=envelope["TopicArn"],
      timestamp=timestamp,
      job_id=str(message["JobId"]),
      job_status=str(message["Status"]),
      analysis_type=_analysis_type_marker(api, job_tag),
      api=api,
      job_tag=job_tag,
    )


def _analysis_type_marker(api: str | None, job_tag: str | None) -> AnalysisType | None:
  """Derive the analysis type from the API name, falling back to the job tag."""
  if api in _API_ANALYSIS_TYPES:
    return _API_ANALYSIS_TYPES[api]
  parsed = parse_client_token(job_tag)
  if parsed is not None and parsed[0] in ANALYSIS_TYPES:
    return parsed[0]  # type: ignore[return-value]
  return None
