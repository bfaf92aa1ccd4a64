import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from media_recognition.core.database import dispose_engine
from media_recognition.core.logging import initialize_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging once uvicorn has started and release pooled connections on shutdown."""
  from media_recognition.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("media_recognition.core.lifespan")

  try:
    initialize_logging(settings)
  except RuntimeError:
    # Keep serving with the default handlers when the log directory is unusable.
    logger.warning("Logging setup failed; continuing with default handlers.", exc_info=True)

  logger.info("Startup complete environment=%s region=%s database=%s", settings.environment, settings.aws_region, _redact_dsn(settings.pg_dsn))
  if not settings.sns_topic_arn:
    logger.warning("MEDIA_RECOGNITION_SNS_TOPIC_ARN is unset; submissions will fail and webhook topic checks are disabled.")

  yield

  await dispose_engine()
  logger.info("Shutdown complete.")


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
