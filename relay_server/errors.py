"""
Relay error taxonomy.

ValidationError    caller input missing or out of range      -> 400
ConfigurationError required provider credential not set      -> 500
UpstreamError      provider call failed or returned non-2xx  -> provider status, 500 default

Provider clients raise these; route handlers decide whether to surface them
(tts, voice design, stt) or degrade (chat).
"""
import asyncio
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from logging_setup import Component, get_logger

logger = get_logger(Component.RELAY_SERVER)


class RelayError(Exception):
    """Base class for errors that map to an HTTP response."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_body(self) -> Dict[str, Any]:
        return {"error": self.message}


class ValidationError(RelayError):
    status_code = 400


class ConfigurationError(RelayError):
    status_code = 500

    def __init__(self, setting: str):
        super().__init__(f"Server misconfiguration: {setting} missing")
        self.setting = setting


class UpstreamError(RelayError):
    """
    Provider call failed. payload holds the provider's error body, if any:
    decoded JSON, or the raw text when the body was not JSON. content_type
    is the provider's Content-Type for that body.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        payload: Any = None,
        provider: Optional[str] = None,
        content_type: Optional[str] = None,
    ):
        super().__init__(message, status_code or 500)
        self.upstream_status = status_code
        self.payload = payload
        self.provider = provider
        self.content_type = content_type

    def to_body(self) -> Dict[str, Any]:
        body = {"error": self.message}
        if self.payload is not None:
            body["details"] = self.payload
        return body


class UpstreamErrorCategory:
    """Stable categories attached to failure events."""

    AUTH_FAILED = "provider.auth_failed"
    RATE_LIMITED = "provider.rate_limited"
    NETWORK_ERROR = "provider.network_error"
    BAD_RESPONSE = "provider.bad_response"
    UNAVAILABLE = "provider.unavailable"
    REJECTED = "provider.rejected"
    UNKNOWN_ERROR = "provider.unknown_error"


def classify_upstream_error(error: Exception) -> str:
    """Map any provider failure to an UpstreamErrorCategory value."""
    status = getattr(error, "upstream_status", None)
    if status is not None:
        if status in (401, 403):
            return UpstreamErrorCategory.AUTH_FAILED
        if status == 429:
            return UpstreamErrorCategory.RATE_LIMITED
        if status >= 500:
            return UpstreamErrorCategory.UNAVAILABLE
        if 400 <= status < 500:
            return UpstreamErrorCategory.REJECTED

    error_str = str(error).lower()
    cause = error.__cause__ or error

    if isinstance(cause, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return UpstreamErrorCategory.NETWORK_ERROR
    if "timeout" in error_str or "connect" in error_str or "network" in error_str:
        return UpstreamErrorCategory.NETWORK_ERROR
    if isinstance(cause, (KeyError, ValueError, TypeError)) or "malformed" in error_str:
        return UpstreamErrorCategory.BAD_RESPONSE
    return UpstreamErrorCategory.UNKNOWN_ERROR


def redact(detail: str) -> str:
    """Hide error details that may carry credentials."""
    lowered = detail.lower()
    if "secret" in lowered or "api key" in lowered or "api-key" in lowered or "bearer" in lowered:
        return "[redacted: potential secret]"
    return detail


async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies are caller errors: 400, same envelope as ValidationError."""
    fields = sorted(
        {
            err["loc"][-1]
            for err in exc.errors()
            if err.get("loc") and isinstance(err["loc"][-1], str) and err["loc"][-1] != "body"
        }
    )
    logger.info("Request body rejected", path=request.url.path, fields=fields)
    message = "Invalid request body"
    if fields:
        message = f"Invalid request body: {', '.join(fields)}"
    return JSONResponse(status_code=400, content={"error": message})


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RelayError, relay_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
