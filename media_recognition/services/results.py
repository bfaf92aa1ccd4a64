"""Normalization of provider results and merging into media records."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import msgspec

from media_recognition.jobs.models import AnalysisType, ensure_analysis_type
from media_recognition.storage.media_repo import MediaRepository

logger = logging.getLogger(__name__)


class DetectedLabel(msgspec.Struct, rename="pascal", omit_defaults=True):
  name: str
  confidence: float
  timestamp: int | None = None
  start_timestamp_millis: int | None = None
  end_timestamp_millis: int | None = None
  duration_millis: int | None = None
  instances: list[dict[str, Any]] | None = None
  parents: list[dict[str, Any]] | None = None
  categories: list[dict[str, Any]] | None = None
  aliases: list[dict[str, Any]] | None = None


class DetectedFace(msgspec.Struct, rename="pascal", omit_defaults=True):
  confidence: float
  bounding_box: dict[str, float] | None = None
  timestamp: int | None = None
  age_range: dict[str, int] | None = None
  gender: dict[str, Any] | None = None
  smile: dict[str, Any] | None = None
  emotions: list[dict[str, Any]] | None = None
  eyes_open: dict[str, Any] | None = None
  mouth_open: dict[str, Any] | None = None
  beard: dict[str, Any] | None = None
  mustache: dict[str, Any] | None = None
  eyeglasses: dict[str, Any] | None = None
  sunglasses: dict[str, Any] | None = None
  landmarks: list[dict[str, Any]] | None = None
  pose: dict[str, float] | None = None
  quality: dict[str, float] | None = None
  face_occluded: dict[str, Any] | None = None
  eye_direction: dict[str, float] | None = None


class DetectedModerationLabel(msgspec.Struct, rename="pascal", omit_defaults=True):
  name: str
  confidence: float
  parent_name: str | None = None
  taxonomy_level: int | None = None
  timestamp: int | None = None
  start_timestamp_millis: int | None = None
  end_timestamp_millis: int | None = None
  duration_millis: int | None = None
  content_types: list[dict[str, Any]] | None = None


class DetectedText(msgspec.Struct, rename="pascal", omit_defaults=True):
  detected_text: str
  type: str
  confidence: float
  id: int | None = None
  parent_id: int | None = None
  geometry: dict[str, Any] | None = None
  timestamp: int | None = None


class LabelsResult(msgspec.Struct, tag="labels"):
  items: list[DetectedLabel]


class FacesResult(msgspec.Struct, tag="faces"):
  items: list[DetectedFace]


class ModerationResult(msgspec.Struct, tag="moderation"):
  items: list[DetectedModerationLabel]


class TextResult(msgspec.Struct, tag="ocr"):
  items: list[DetectedText]


AnalysisResult = LabelsResult | FacesResult | ModerationResult | TextResult

# analysis type -> (result struct, response list keys, nested item key)
_NORMALIZERS: dict[str, tuple[type[Any], tuple[str, ...], str]] = {
  "labels": (LabelsResult, ("Labels",), "Label"),
  "faces": (FacesResult, ("Faces", "FaceDetails"), "Face"),
  "moderation": (ModerationResult, ("ModerationLabels",), "ModerationLabel"),
  "ocr": (TextResult, ("TextDetections",), "TextDetection"),
}


def _extract_items(raw: Any, list_keys: tuple[str, ...]) -> list[Any]:
  if isinstance(raw, list):
    return raw
  if isinstance(raw, Mapping):
    for key in list_keys:
      if key in raw:
        return list(raw[key] or [])
    raise ValueError(f"Provider result has none of the expected keys {list_keys}")
  raise ValueError(f"Unsupported provider result type: {type(raw).__name__}")


def _flatten_item(item: Mapping[str, Any], nested_key: str) -> dict[str, Any]:
  """Unwrap video results of shape {"Timestamp": t, "<Kind>": {...}, ...} into one flat mapping.

  Fields beside the nested object are kept alongside its own fields.
  """
  nested = item.get(nested_key)
  if not isinstance(nested, Mapping):
    return dict(item)
  flat = {key: value for key, value in item.items() if key != nested_key}
  flat.update(nested)
  return flat


def normalize_result(analysis_type: AnalysisType, raw: Any) -> AnalysisResult:
  """Turn a raw provider response into the typed result for its analysis type."""
  analysis_type = ensure_analysis_type(analysis_type)
  result_type, list_keys, nested_key = _NORMALIZERS[analysis_type]
  items = [_flatten_item(item, nested_key) for item in _extract_items(raw, list_keys)]
  try:
    return msgspec.convert({"type": analysis_type, "items": items}, type=result_type)
  except msgspec.ValidationError as exc:
    raise ValueError(f"Malformed {analysis_type} result: {exc}") from exc


def to_stored(result: AnalysisResult) -> list[dict[str, Any]]:
  """Return the JSON shape written to the media record."""
  return msgspec.to_builtins(result.items)


class ResultMerger:
  """Write normalized results into a media record's per-type result store."""

  def __init__(self, media_repo: MediaRepository) -> None:
    self._media_repo = media_repo

  async def merge(self, media_id: int, analysis_type: AnalysisType, raw_provider_result: Any, *, job_id: str | None = None, sequence: int | None = None) -> bool:
    """Store one analysis type's result; returns False when a newer job's result already won."""
    result = normalize_result(analysis_type, raw_provider_result)
    applied = await self._media_repo.update_analysis_results(media_id, analysis_type, to_stored(result), job_id=job_id, sequence=sequence)
    if applied:
      logger.info("Merged %s result into media_id=%s (%d items, job_id=%s)", analysis_type, media_id, len(result.items), job_id)
    return applied
