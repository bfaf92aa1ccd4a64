from __future__ import annotations

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from media_recognition import __version__
from media_recognition.api.routes import analyses, webhook
from media_recognition.core.exceptions import (
  configuration_exception_handler,
  global_exception_handler,
  http_exception_handler,
  provider_exception_handler,
  request_validation_exception_handler,
  unknown_resource_exception_handler,
)
from media_recognition.core.lifespan import lifespan
from media_recognition.core.middleware import RequestLoggingMiddleware
from media_recognition.errors import ConfigurationError, ProviderError, UnknownJobError, UnknownMediaError

app = FastAPI(lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

app.add_exception_handler(Exception, global_exception_handler)
# Registered on Starlette's base class so router 404s share the webhook rejection shape.
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
app.add_exception_handler(ProviderError, provider_exception_handler)
app.add_exception_handler(UnknownJobError, unknown_resource_exception_handler)
app.add_exception_handler(UnknownMediaError, unknown_resource_exception_handler)
app.add_exception_handler(ConfigurationError, configuration_exception_handler)

app.add_middleware(RequestLoggingMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": __version__}


app.include_router(webhook.router, prefix="/media-recognition")
app.include_router(analyses.router, prefix="/media-recognition")
