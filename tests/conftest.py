"""Shared fixtures: a throwaway SQLite database and an SNS-style signing identity."""

from __future__ import annotations

import base64
import json
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.x509.oid import NameOID
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import media_recognition.schema  # noqa: F401
from media_recognition.config import RecognitionConfig, WebhookConfig
from media_recognition.core.database import Base
from media_recognition.schema.media import Media
from media_recognition.services.notifications import SigningCertificateStore, build_string_to_sign
from media_recognition.storage.postgres_jobs_repo import PostgresJobRegistry
from media_recognition.storage.postgres_media_repo import PostgresMediaRepository

TOPIC_ARN = "arn:aws:sns:us-east-1:123456789012:rekognition-complete"
CERT_URL = "https://sns.us-east-1.amazonaws.com/SimpleNotificationService-0000000000000000000000.pem"


# Force anyio to use asyncio
@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture
async def session_factory(tmp_path):
  engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'media_recognition.db'}")
  async with engine.begin() as connection:
    await connection.run_sync(Base.metadata.create_all)
  yield async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)
  await engine.dispose()


@pytest.fixture
def media_repo(session_factory):
  return PostgresMediaRepository(session_factory)


@pytest.fixture
def registry(session_factory):
  return PostgresJobRegistry(session_factory)


@pytest.fixture
def add_media(session_factory):
  """Insert a media row with an explicit id."""

  async def _add(media_id: int, source_name: str = "videos/clip.mp4", disk: str | None = None) -> int:
    async with session_factory() as session:
      session.add(Media(id=media_id, source_name=source_name, disk=disk, analysis_results={}, analysis_job_ids={}, analysis_applied={}, created_at="2026-01-01T00:00:00Z", updated_at="2026-01-01T00:00:00Z"))
      await session.commit()
    return media_id

  return _add


@pytest.fixture
def recognition_config():
  return RecognitionConfig(disk="s3", bucket_lookup={"s3": "media-bucket", "archive": "archive-bucket"}, iam_arn="arn:aws:iam::123456789012:role/rekognition", sns_topic_arn=TOPIC_ARN, min_confidence=55.0)


@pytest.fixture
def webhook_config():
  return WebhookConfig(sns_topic_arn=TOPIC_ARN, verify_topic=True, max_age_seconds=3600, clock_skew_seconds=300)


class SnsSigner:
  """Signs envelopes the way SNS does, with a throwaway self-signed certificate."""

  def __init__(self, *, valid_for: timedelta = timedelta(days=30)) -> None:
    self.key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "sns.amazonaws.com")])
    now = datetime.now(UTC)
    certificate = (
      x509.CertificateBuilder()
      .subject_name(name)
      .issuer_name(name)
      .public_key(self.key.public_key())
      .serial_number(x509.random_serial_number())
      .not_valid_before(now - timedelta(days=1))
      .not_valid_after(now + valid_for)
      .sign(self.key, hashes.SHA256())
    )
    self.pem = certificate.public_bytes(serialization.Encoding.PEM)
    self.fetches: list[str] = []

  def transport(self) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
      self.fetches.append(str(request.url))
      return httpx.Response(200, content=self.pem)

    return httpx.MockTransport(handler)

  def certificates(self) -> SigningCertificateStore:
    return SigningCertificateStore(transport=self.transport())

  def sign(self, envelope: dict[str, Any]) -> dict[str, Any]:
    algorithm = hashes.SHA256() if envelope.get("SignatureVersion") == "2" else hashes.SHA1()
    signature = self.key.sign(build_string_to_sign(envelope), padding.PKCS1v15(), algorithm)
    return {**envelope, "Signature": base64.b64encode(signature).decode("ascii")}

  def notification(
    self,
    *,
    job_id: str = "abc123",
    status: str = "SUCCEEDED",
    api: str | None = "StartLabelDetection",
    job_tag: str | None = "labels_42_a1B2c3",
    timestamp: datetime | None = None,
    topic_arn: str = TOPIC_ARN,
    signature_version: str = "1",
    cert_url: str = CERT_URL,
  ) -> dict[str, Any]:
    message: dict[str, Any] = {"JobId": job_id, "Status": status, "Timestamp": 1760000000000}
    if api is not None:
      message["API"] = api
    if job_tag is not None:
      message["JobTag"] = job_tag
    envelope = {
      "Type": "Notification",
      "MessageId": "9c1f2f7e-0000-4000-8000-000000000001",
      "TopicArn": topic_arn,
      "Message": json.dumps(message),
      "Timestamp": (timestamp or datetime.now(UTC)).strftime("%Y-%m-%dT%H:%M:%S.000Z"),
      "SignatureVersion": signature_version,
      "SigningCertURL": cert_url,
    }
    return self.sign(envelope)

  def subscription_confirmation(self, *, subscribe_url: str = "https://sns.us-east-1.amazonaws.com/?Action=ConfirmSubscription&Token=tok") -> dict[str, Any]:
    envelope = {
      "Type": "SubscriptionConfirmation",
      "MessageId": "9c1f2f7e-0000-4000-8000-000000000002",
      "Token": "tok",
      "TopicArn": TOPIC_ARN,
      "Message": "You have chosen to subscribe to the topic.",
      "SubscribeURL": subscribe_url,
      "Timestamp": datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.000Z"),
      "SignatureVersion": "1",
      "SigningCertURL": CERT_URL,
    }
    return self.sign(envelope)


@pytest.fixture(scope="session")
def sns_signer():
  return SnsSigner()


@pytest.fixture
def make_sns_signer():
  """Build a signer with its own certificate and fetch log."""
  return SnsSigner
