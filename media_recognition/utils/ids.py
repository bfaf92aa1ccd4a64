"""Identifier utilities."""

from __future__ import annotations

import secrets
import string

CLIENT_TOKEN_SUFFIX_LENGTH = 6
_ALPHABET = string.ascii_letters + string.digits


def generate_nanoid(size: int = 16) -> str:
  """Return a short non-sequential id."""
  return "".join(secrets.choice(_ALPHABET) for _ in range(size))


def generate_client_token(analysis_type: str, media_id: int) -> str:
  """Return a fresh idempotency token scoped to one (analysis type, media) submission.

  The provider collapses repeated starts carrying the exact same token into one job,
  so a token must be generated per logical submission and never reused across them.
  """
  return f"{analysis_type}_{media_id}_{generate_nanoid(CLIENT_TOKEN_SUFFIX_LENGTH)}"


def parse_client_token(token: str | None) -> tuple[str, int] | None:
  """Recover (analysis type, media id) from a client token or job tag."""
  if not token:
    return None
  parts = token.rsplit("_", 2)
  if len(parts) != 3:
    return None
  analysis_type, raw_media_id, suffix = parts
  if not analysis_type or len(suffix) != CLIENT_TOKEN_SUFFIX_LENGTH or not raw_media_id.isdigit():
    return None
  return analysis_type, int(raw_media_id)
