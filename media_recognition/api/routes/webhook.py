from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from media_recognition.api.deps import get_recognition_service, get_webhook_authenticator
from media_recognition.services.notifications import WebhookAuthenticator, WebhookRejection
from media_recognition.services.recognition import RecognitionService

router = APIRouter(tags=["webhook"])
logger = logging.getLogger(__name__)


@router.post("/webhook", status_code=status.HTTP_200_OK)
async def receive_notification(
  request: Request,
  authenticator: Annotated[WebhookAuthenticator, Depends(get_webhook_authenticator)],
  service: Annotated[RecognitionService, Depends(get_recognition_service)],
  x_amz_sns_message_type: str | None = Header(default=None),
) -> dict[str, str]:
  """
  Receive SNS deliveries announcing finished analysis jobs.
  Every authentication failure answers exactly like an unknown route.
  """
  raw_body = await request.body()
  result = await authenticator.authenticate(raw_body, message_type_header=x_amz_sns_message_type)
  if isinstance(result, WebhookRejection):
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")

  outcome = await service.handle_notification(result)
  logger.info("Handled %s message %s: %s", result.message_type, result.message_id, outcome.status)
  return {"status": outcome.status}


@router.api_route("/webhook", methods=["GET", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"], include_in_schema=False)
async def reject_other_methods() -> None:
  # Only POST is served; anything else looks like an unknown route, not a 405.
  raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
