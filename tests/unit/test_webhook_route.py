from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from media_recognition.api.deps import get_recognition_service, get_webhook_authenticator
from media_recognition.errors import ProviderError, UnknownJobError, UnknownMediaError
from media_recognition.main import app
from media_recognition.services.notifications import WebhookAuthenticator
from media_recognition.services.recognition import JobResults, NotificationOutcome


@pytest.fixture
def service():
  return AsyncMock()


@pytest.fixture
async def client(webhook_config, sns_signer, service):
  app.dependency_overrides[get_webhook_authenticator] = lambda: WebhookAuthenticator(webhook_config, certificates=sns_signer.certificates())
  app.dependency_overrides[get_recognition_service] = lambda: service
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
    yield ac
  app.dependency_overrides.clear()


@pytest.mark.anyio
async def test_valid_notification_is_handled(client, sns_signer, service) -> None:
  service.handle_notification.return_value = NotificationOutcome(status="completed", job_id="abc123", media_id=42, analysis_type="labels")

  response = await client.post("/media-recognition/webhook", content=json.dumps(sns_signer.notification()), headers={"content-type": "text/plain; charset=UTF-8", "x-amz-sns-message-type": "Notification"})

  assert response.status_code == 200
  assert response.json() == {"status": "completed"}
  notification = service.handle_notification.await_args.args[0]
  assert notification.job_id == "abc123"
  assert "x-request-id" in response.headers


@pytest.mark.anyio
async def test_tampered_notification_looks_like_an_unknown_route(client, sns_signer, service) -> None:
  envelope = sns_signer.notification()
  envelope["Message"] = envelope["Message"].replace("SUCCEEDED", "FAILED")

  rejected = await client.post("/media-recognition/webhook", content=json.dumps(envelope))
  unknown = await client.post("/media-recognition/no-such-route", content=json.dumps(envelope))

  assert rejected.status_code == unknown.status_code == 404
  assert rejected.json()["detail"] == unknown.json()["detail"] == "Not Found"
  assert rejected.json().keys() == unknown.json().keys()
  service.handle_notification.assert_not_awaited()


@pytest.mark.anyio
@pytest.mark.parametrize("method", ["GET", "PUT", "DELETE"])
async def test_other_methods_on_webhook_look_like_an_unknown_route(client, service, method) -> None:
  response = await client.request(method, "/media-recognition/webhook")
  unknown = await client.request(method, "/media-recognition/no-such-route")

  assert response.status_code == unknown.status_code == 404
  assert response.json()["detail"] == unknown.json()["detail"] == "Not Found"
  assert "allow" not in response.headers
  service.handle_notification.assert_not_awaited()


@pytest.mark.anyio
async def test_unknown_job_answers_not_found(client, sns_signer, service) -> None:
  service.handle_notification.side_effect = UnknownJobError("abc123")

  response = await client.post("/media-recognition/webhook", content=json.dumps(sns_signer.notification()))

  assert response.status_code == 404
  assert response.json()["detail"] == "Not Found"


@pytest.mark.anyio
async def test_start_video_analysis_route(client, service) -> None:
  service.start_video_analysis.return_value = "abc123"

  response = await client.post("/media-recognition/media/42/video-analyses", json={"analysis_type": "labels", "min_confidence": 70})

  assert response.status_code == 202
  assert response.json() == {"job_id": "abc123", "media_id": 42, "analysis_type": "labels"}
  args = service.start_video_analysis.await_args.args
  assert args[0] == 42
  assert args[2].min_confidence == 70


@pytest.mark.anyio
async def test_unknown_media_answers_not_found(client, service) -> None:
  service.start_video_analysis.side_effect = UnknownMediaError(7)

  response = await client.post("/media-recognition/media/7/video-analyses", json={"analysis_type": "faces"})

  assert response.status_code == 404


@pytest.mark.anyio
async def test_provider_failure_is_a_bad_gateway(client, service) -> None:
  service.start_video_analysis.side_effect = ProviderError("Rekognition start_label_detection failed: ThrottlingException", code="ThrottlingException", detail="Rate exceeded")

  response = await client.post("/media-recognition/media/42/video-analyses", json={"analysis_type": "labels"})

  assert response.status_code == 502
  assert "Rate exceeded" not in response.text


@pytest.mark.anyio
async def test_unsupported_analysis_type_is_a_validation_error(client, service) -> None:
  response = await client.post("/media-recognition/media/42/video-analyses", json={"analysis_type": "celebrities"})

  assert response.status_code == 422
  service.start_video_analysis.assert_not_awaited()


@pytest.mark.anyio
async def test_manual_pull_reports_provider_status(client, service) -> None:
  service.fetch_results.return_value = JobResults(job_id="abc123", job_status="IN_PROGRESS")

  response = await client.post("/media-recognition/jobs/abc123/results")

  assert response.status_code == 200
  assert response.json() == {"job_id": "abc123", "job_status": "IN_PROGRESS", "applied": False, "result": None}
