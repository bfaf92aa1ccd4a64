from __future__ import annotations

import json
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from media_recognition.services.notifications import AuthenticatedNotification, WebhookAuthenticator, WebhookRejection, build_string_to_sign


def _body(envelope: dict) -> bytes:
  return json.dumps(envelope).encode("utf-8")


@pytest.mark.anyio
async def test_valid_notification_is_accepted(webhook_config, sns_signer) -> None:
  authenticator = WebhookAuthenticator(webhook_config, certificates=sns_signer.certificates())

  result = await authenticator.authenticate(_body(sns_signer.notification()), message_type_header="Notification")

  assert isinstance(result, AuthenticatedNotification)
  assert result.job_id == "abc123"
  assert result.job_status == "SUCCEEDED"
  assert result.analysis_type == "labels"
  assert result.is_job_completion


@pytest.mark.anyio
async def test_signature_version_two_uses_sha256(webhook_config, sns_signer) -> None:
  authenticator = WebhookAuthenticator(webhook_config, certificates=sns_signer.certificates())

  result = await authenticator.authenticate(_body(sns_signer.notification(signature_version="2")))

  assert isinstance(result, AuthenticatedNotification)


@pytest.mark.anyio
async def test_tampered_message_is_rejected(webhook_config, sns_signer) -> None:
  envelope = sns_signer.notification()
  envelope["Message"] = json.dumps({"JobId": "someone-elses-job", "Status": "SUCCEEDED", "API": "StartLabelDetection"})
  authenticator = WebhookAuthenticator(webhook_config, certificates=sns_signer.certificates())

  result = await authenticator.authenticate(_body(envelope))

  assert isinstance(result, WebhookRejection)
  assert result.reason == "signature mismatch"


@pytest.mark.anyio
@pytest.mark.parametrize(
  "cert_url",
  [
    "http://sns.us-east-1.amazonaws.com/cert.pem",
    "https://sns.us-east-1.amazonaws.com.evil.example/cert.pem",
    "https://evil.example/sns.us-east-1.amazonaws.com/cert.pem",
    "https://sns.us-east-1.amazonaws.com/cert.txt",
  ],
)
async def test_foreign_certificate_urls_are_never_fetched(webhook_config, sns_signer, cert_url) -> None:
  certificates = AsyncMock()
  authenticator = WebhookAuthenticator(webhook_config, certificates=certificates)

  result = await authenticator.authenticate(_body(sns_signer.notification(cert_url=cert_url)))

  assert isinstance(result, WebhookRejection)
  certificates.get.assert_not_awaited()


@pytest.mark.anyio
async def test_stale_and_future_timestamps_are_rejected(webhook_config, sns_signer) -> None:
  authenticator = WebhookAuthenticator(webhook_config, certificates=sns_signer.certificates())
  now = datetime.now(UTC)

  old = await authenticator.authenticate(_body(sns_signer.notification(timestamp=now - timedelta(hours=2))))
  future = await authenticator.authenticate(_body(sns_signer.notification(timestamp=now + timedelta(minutes=30))))

  assert isinstance(old, WebhookRejection)
  assert isinstance(future, WebhookRejection)


@pytest.mark.anyio
async def test_unexpected_topic_is_rejected(webhook_config, sns_signer) -> None:
  authenticator = WebhookAuthenticator(webhook_config, certificates=sns_signer.certificates())

  result = await authenticator.authenticate(_body(sns_signer.notification(topic_arn="arn:aws:sns:us-east-1:999999999999:other")))

  assert isinstance(result, WebhookRejection)


@pytest.mark.anyio
async def test_topic_check_can_be_disabled(webhook_config, sns_signer) -> None:
  authenticator = WebhookAuthenticator(replace(webhook_config, verify_topic=False), certificates=sns_signer.certificates())

  result = await authenticator.authenticate(_body(sns_signer.notification(topic_arn="arn:aws:sns:us-east-1:999999999999:other")))

  assert isinstance(result, AuthenticatedNotification)


@pytest.mark.anyio
async def test_message_type_header_must_match(webhook_config, sns_signer) -> None:
  authenticator = WebhookAuthenticator(webhook_config, certificates=sns_signer.certificates())

  result = await authenticator.authenticate(_body(sns_signer.notification()), message_type_header="SubscriptionConfirmation")

  assert isinstance(result, WebhookRejection)


@pytest.mark.anyio
@pytest.mark.parametrize("raw_body", [b"not json", b"[]", b"{}", json.dumps({"Type": "Notification"}).encode()])
async def test_malformed_bodies_are_rejected(webhook_config, raw_body) -> None:
  authenticator = WebhookAuthenticator(webhook_config, certificates=AsyncMock())

  assert isinstance(await authenticator.authenticate(raw_body), WebhookRejection)


@pytest.mark.anyio
async def test_analysis_type_falls_back_to_job_tag(webhook_config, sns_signer) -> None:
  authenticator = WebhookAuthenticator(webhook_config, certificates=sns_signer.certificates())

  result = await authenticator.authenticate(_body(sns_signer.notification(api=None, job_tag="ocr_42_Zz9Yy8")))

  assert isinstance(result, AuthenticatedNotification)
  assert result.analysis_type == "ocr"


@pytest.mark.anyio
async def test_subscription_confirmation_is_accepted(webhook_config, sns_signer) -> None:
  authenticator = WebhookAuthenticator(webhook_config, certificates=sns_signer.certificates())

  result = await authenticator.authenticate(_body(sns_signer.subscription_confirmation()))

  assert isinstance(result, AuthenticatedNotification)
  assert result.message_type == "SubscriptionConfirmation"
  assert result.subscribe_url.startswith("https://sns.us-east-1.amazonaws.com/")
  assert result.job_id is None


@pytest.mark.anyio
async def test_subscription_confirmation_to_foreign_host_is_rejected(webhook_config, sns_signer) -> None:
  authenticator = WebhookAuthenticator(webhook_config, certificates=sns_signer.certificates())

  result = await authenticator.authenticate(_body(sns_signer.subscription_confirmation(subscribe_url="https://attacker.example/confirm")))

  assert isinstance(result, WebhookRejection)


@pytest.mark.anyio
async def test_signing_certificate_is_fetched_once_per_url(webhook_config, make_sns_signer) -> None:
  signer = make_sns_signer()
  authenticator = WebhookAuthenticator(webhook_config, certificates=signer.certificates())

  await authenticator.authenticate(_body(signer.notification()))
  await authenticator.authenticate(_body(signer.notification(job_id="def456")))

  assert len(signer.fetches) == 1


@pytest.mark.anyio
async def test_expired_certificate_is_rejected(webhook_config, make_sns_signer) -> None:
  signer = make_sns_signer(valid_for=timedelta(days=30))
  authenticator = WebhookAuthenticator(webhook_config, certificates=signer.certificates(), clock=lambda: datetime.now(UTC) + timedelta(days=60))
  envelope = signer.notification(timestamp=datetime.now(UTC) + timedelta(days=60))

  result = await authenticator.authenticate(_body(envelope))

  assert isinstance(result, WebhookRejection)
  assert "validity" in result.reason


def test_string_to_sign_skips_absent_subject() -> None:
  envelope = {"Type": "Notification", "MessageId": "m", "TopicArn": "t", "Message": "x", "Timestamp": "2026-01-01T00:00:00.000Z"}
  assert build_string_to_sign(envelope) == b"Message\nx\nMessageId\nm\nTimestamp\n2026-01-01T00:00:00.000Z\nTopicArn\nt\nType\nNotification\n"


def test_string_to_sign_treats_null_subject_as_absent() -> None:
  envelope = {"Type": "Notification", "MessageId": "m", "TopicArn": "t", "Message": "x", "Timestamp": "2026-01-01T00:00:00.000Z"}

  assert build_string_to_sign({**envelope, "Subject": None}) == build_string_to_sign(envelope)
  assert b"None" not in build_string_to_sign({**envelope, "Subject": None})


@pytest.mark.anyio
async def test_null_subject_on_signed_notification_is_accepted(webhook_config, sns_signer) -> None:
  envelope = sns_signer.notification()
  envelope["Subject"] = None
  authenticator = WebhookAuthenticator(webhook_config, certificates=sns_signer.certificates())

  result = await authenticator.authenticate(_body(envelope))

  assert isinstance(result, AuthenticatedNotification)
