"""Domain models for asynchronous media analysis jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, get_args

AnalysisType = Literal["labels", "faces", "moderation", "ocr"]
JobStatus = Literal["pending", "completed", "failed"]

ANALYSIS_TYPES: tuple[str, ...] = get_args(AnalysisType)
TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})


def ensure_analysis_type(value: str) -> AnalysisType:
  """Validate a raw analysis type string."""
  if value not in ANALYSIS_TYPES:
    raise ValueError(f"Unsupported analysis type: {value!r}")
  return value  # type: ignore[return-value]


@dataclass
class AnalysisJobRecord:
  """Correlates one provider job with the media record it analyzes."""

  job_id: str
  media_id: int
  analysis_type: AnalysisType
  status: JobStatus
  sequence: int
  created_at: str
  updated_at: str
  client_token: str | None = None
  completed_at: str | None = None
  error: str | None = None

  @property
  def is_terminal(self) -> bool:
    return self.status in TERMINAL_STATUSES


@dataclass
class MediaRecord:
  """Media row as seen by the recognition core."""

  media_id: int
  source_name: str
  disk: str | None
  analysis_results: dict[str, Any] = field(default_factory=dict)
  analysis_job_ids: dict[str, str] = field(default_factory=dict)
  analysis_applied: dict[str, dict[str, Any]] = field(default_factory=dict)
  version: int = 0


def is_stale_result(applied: dict[str, Any] | None, *, job_id: str | None, sequence: int | None) -> bool:
  """Return True when an incoming result is older than the one already stored for its type.

  Results without a sequence, or with nothing applied yet, are never stale.
  """
  if sequence is None or not applied:
    return False
  if job_id is not None and applied.get("job_id") == job_id:
    return False
  applied_sequence = applied.get("sequence")
  if applied_sequence is None:
    return False
  return int(sequence) < int(applied_sequence)
