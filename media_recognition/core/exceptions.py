import logging
from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from media_recognition.errors import ConfigurationError, ProviderError, UnknownJobError, UnknownMediaError

logger = logging.getLogger("uvicorn.error")


def _error_payload(detail: Any, *, request_id: str | None = None) -> dict[str, Any]:
  """Build a safe error payload that avoids leaking internal details to clients."""
  payload: dict[str, Any] = {"detail": detail}
  # Attach a request id so support can correlate client reports to server logs.
  if request_id:
    payload["requestId"] = request_id
  return payload


def _request_id(request: Request) -> str | None:
  return getattr(request.state, "request_id", None)


def _sanitize_validation_errors(errors: Any) -> list[dict[str, Any]]:
  """Return validation errors without raw input payloads."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    scrubbed = {key: value for key, value in dict(error).items() if key not in {"input", "ctx"}}
    sanitized.append({key: value if isinstance(value, str | int | float | bool | list | tuple) or value is None else str(value) for key, value in scrubbed.items()})
  return sanitized


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  """Catch unhandled errors."""
  request_id = _request_id(request)
  logger.error("Global exception request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=True)
  return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error", request_id=request_id))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
  request_id = _request_id(request)
  sanitized_errors = _sanitize_validation_errors(exc.errors())
  logger.warning("Request validation failed request_id=%s path=%s method=%s errors=%s", request_id, request.url.path, request.method, sanitized_errors)
  return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=_error_payload(sanitized_errors, request_id=request_id))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
  """Handle HTTP exceptions, including router-level 404s, with one response shape."""
  from media_recognition.config import get_settings

  request_id = _request_id(request)
  if exc.status_code >= 500:
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail, exc_info=True)
    return JSONResponse(status_code=exc.status_code, content=_error_payload("Internal Server Error", request_id=request_id))

  if get_settings().log_http_4xx:
    logger.warning("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail)

  return JSONResponse(status_code=exc.status_code, content=_error_payload(exc.detail, request_id=request_id), headers=getattr(exc, "headers", None))


async def provider_exception_handler(request: Request, exc: ProviderError) -> JSONResponse:
  """Surface provider failures as a bad gateway without leaking the provider message."""
  request_id = _request_id(request)
  logger.error("Provider failure request_id=%s path=%s code=%s detail=%s", request_id, request.url.path, exc.code, exc.detail, exc_info=True)
  return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content=_error_payload("Recognition provider unavailable", request_id=request_id))


async def unknown_resource_exception_handler(request: Request, exc: UnknownJobError | UnknownMediaError) -> JSONResponse:
  """Unknown jobs and media answer like any other missing route."""
  request_id = _request_id(request)
  logger.error("Unknown resource request_id=%s path=%s error=%s", request_id, request.url.path, exc)
  return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=_error_payload("Not Found", request_id=request_id))


async def configuration_exception_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
  request_id = _request_id(request)
  logger.error("Configuration error request_id=%s path=%s", request_id, request.url.path, exc_info=True)
  return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error", request_id=request_id))
