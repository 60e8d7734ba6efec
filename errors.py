"""
Application error hierarchy and FastAPI exception handlers.

AppError is the base for all typed errors. The global exception handlers
convert every error into the standard failure envelope:

    {"ok": false, "error": "...", "status": 404, "timestamp": "..."}

Upstream failures and non-AppError exceptions are logged with full detail
server-side; the client only ever sees a generic message.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from shared.logging import get_logger

log = get_logger(__name__)


class AppError(Exception):
    """Base application error. All typed errors inherit from this."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        details: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details

    def to_dict(self) -> dict:
        payload: dict = {
            "ok": False,
            "error": self.message,
            "code": self.error_code,
            "status": self.status_code,
            "timestamp": utc_timestamp(),
        }
        if self.field is not None:
            payload["field"] = self.field
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(AppError):
    status_code = 400
    error_code = "validation_error"


class UnsupportedFormatError(ValidationError):
    error_code = "unsupported_format"


class AuthenticationError(AppError):
    status_code = 401
    error_code = "authentication_error"


class ForbiddenError(AppError):
    status_code = 403
    error_code = "forbidden"


class NotFoundError(AppError):
    status_code = 404
    error_code = "not_found"


class PayloadTooLargeError(AppError):
    status_code = 413
    error_code = "payload_too_large"


class TargetUnreachableError(AppError):
    status_code = 422
    error_code = "target_unreachable"


class UpstreamError(AppError):
    """An external collaborator (AI, storage, KV) is unavailable.

    The message given here is logged; clients receive a generic one.
    """

    status_code = 503
    error_code = "upstream_unavailable"
    public_message = "Upstream service unavailable"

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["error"] = self.public_message
        payload.pop("details", None)
        return payload


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def error_envelope(status_code: int, message: str, code: str) -> dict:
    return {
        "ok": False,
        "error": message,
        "code": code,
        "status": status_code,
        "timestamp": utc_timestamp(),
    }


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        # Read by the metrics middleware to count the error by code
        request.state.api_error = exc
        if isinstance(exc, UpstreamError):
            log.error(
                "upstream_error",
                path=request.url.path,
                error=exc.message,
                details=exc.details,
            )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = first.get("msg", "Invalid request")
        if location:
            message = f"{location}: {message}"
        return JSONResponse(
            status_code=422,
            content=error_envelope(422, message, "validation_error"),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=error_envelope(exc.status_code, str(exc.detail), "http_error"),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        # Sentry integration: if sentry_sdk is initialized it will auto-capture
        # unhandled exceptions before this handler fires.
        log.exception(
            "unhandled_exception",
            path=request.url.path,
            error_type=type(exc).__name__,
        )
        return JSONResponse(
            status_code=500,
            content=error_envelope(
                500, "An internal server error occurred.", "internal_error"
            ),
        )
