"""Provider-agnostic contracts for the external recognition service."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

from media_recognition.jobs.models import AnalysisType

FaceAttributes = Literal["DEFAULT", "ALL"]


@dataclass(frozen=True)
class SourceReference:
  """Object key of the media file plus the storage disk it lives on."""

  name: str
  disk: str | None = None


@dataclass(frozen=True)
class AnalysisOptions:
  """Type-specific tuning passed through to the provider."""

  min_confidence: float | None = None
  max_results: int = 1000
  face_attributes: FaceAttributes = "DEFAULT"
  text_filters: dict[str, Any] | None = None


@dataclass(frozen=True)
class SubmissionRequest:
  """Everything the provider needs to start one asynchronous analysis."""

  analysis_type: AnalysisType
  source: dict[str, str]
  notification_channel: dict[str, str]
  client_token: str
  job_tag: str
  options: AnalysisOptions = field(default_factory=AnalysisOptions)


class RecognitionProvider(Protocol):
  """Interface for the vision provider performing the analysis out of process."""

  async def start_analysis(self, request: SubmissionRequest) -> str:
    """Start an asynchronous analysis and return the provider job id."""
    ...

  async def fetch_results(self, job_id: str, analysis_type: AnalysisType) -> dict[str, Any]:
    """Return the complete raw result of a finished job."""
    ...

  async def detect_image(self, source: dict[str, str], analysis_type: AnalysisType, options: AnalysisOptions) -> dict[str, Any]:
    """Run a synchronous analysis on a stored image."""
    ...
