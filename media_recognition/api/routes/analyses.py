from __future__ import annotations

import logging
from typing import Annotated, Any

import msgspec
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from media_recognition.api.deps import get_recognition_service
from media_recognition.jobs.models import AnalysisType
from media_recognition.providers.interface import AnalysisOptions, FaceAttributes
from media_recognition.services.recognition import RecognitionService

router = APIRouter(tags=["analyses"])
logger = logging.getLogger(__name__)


class AnalysisRequest(BaseModel):
  analysis_type: AnalysisType
  min_confidence: float | None = Field(default=None, ge=0, le=100)
  max_results: int = Field(default=1000, ge=1)
  face_attributes: FaceAttributes = "DEFAULT"
  text_filters: dict[str, Any] | None = None

  def to_options(self) -> AnalysisOptions:
    return AnalysisOptions(min_confidence=self.min_confidence, max_results=self.max_results, face_attributes=self.face_attributes, text_filters=self.text_filters)


class StartAnalysisResponse(BaseModel):
  job_id: str
  media_id: int
  analysis_type: AnalysisType


@router.post("/media/{media_id}/video-analyses", status_code=status.HTTP_202_ACCEPTED, response_model=StartAnalysisResponse)
async def start_video_analysis(media_id: int, payload: AnalysisRequest, service: Annotated[RecognitionService, Depends(get_recognition_service)]) -> StartAnalysisResponse:
  """Start an asynchronous video analysis; results arrive through the webhook."""
  job_id = await service.start_video_analysis(media_id, payload.analysis_type, payload.to_options())
  return StartAnalysisResponse(job_id=job_id, media_id=media_id, analysis_type=payload.analysis_type)


@router.post("/media/{media_id}/image-analyses")
async def analyze_image(media_id: int, payload: AnalysisRequest, service: Annotated[RecognitionService, Depends(get_recognition_service)]) -> dict[str, Any]:
  result = await service.analyze_image(media_id, payload.analysis_type, payload.to_options())
  return {"media_id": media_id, "result": msgspec.to_builtins(result)}


@router.post("/jobs/{job_id}/results")
async def fetch_job_results(job_id: str, service: Annotated[RecognitionService, Depends(get_recognition_service)], merge: bool = True) -> dict[str, Any]:
  """Pull the result of a registered job from the provider, for jobs whose notification was lost."""
  pulled = await service.fetch_results(job_id, merge=merge)
  result = msgspec.to_builtins(pulled.result) if pulled.result is not None else None
  return {"job_id": job_id, "job_status": pulled.job_status, "applied": pulled.applied, "result": result}
