"""HTTP middleware: request context, domain error mapping and CORS.

Outermost first:
    RequestContextMiddleware  binds request_id / user_id for logging and
                              echoes X-Request-ID
    ErrorHandlerMiddleware    turns ClearinghouseError into
                              ``{"error": code, "message": message}``
    CORSMiddleware
"""

from __future__ import annotations

import time
import uuid
from typing import TYPE_CHECKING

import structlog
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from atelier_clearinghouse.config import get_settings
from atelier_clearinghouse.domain.exceptions import (
    ClearinghouseError,
    ConflictError,
    ExpiredError,
    ExternalDependencyError,
    InsufficientBalanceError,
    InvalidStateTransitionError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from atelier_clearinghouse.logging_config import get_logger

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Checked in order; anything unlisted is a 400.
STATUS_CODES: list[tuple[type[ClearinghouseError], int]] = [
    (ValidationError, 422),
    (NotFoundError, 404),
    (UnauthorizedError, 403),
    (InsufficientBalanceError, 409),
    (ConflictError, 409),
    (ExpiredError, 410),
    (ExternalDependencyError, 502),
]


def status_for(exc: ClearinghouseError) -> int:
    return next((code for kind, code in STATUS_CODES if isinstance(exc, kind)), 400)


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": code, "message": message})


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind per-request log context and log one line per request."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            user_id=request.headers.get("X-User-ID"),
        )

        started = time.monotonic()
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        logger.info(
            "http.request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round((time.monotonic() - started) * 1000, 1),
        )
        return response


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Map domain errors to JSON responses; anything else is a logged 500."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await call_next(request)
        except ClearinghouseError as exc:
            status_code = status_for(exc)
            log = logger.error if status_code >= 500 else logger.warning
            if isinstance(exc, InvalidStateTransitionError):
                log(
                    "http.invalid_transition",
                    code=exc.code,
                    current=exc.current_state,
                    attempted=exc.attempted,
                )
            else:
                log("http.domain_error", code=exc.code, status=status_code, error=exc.message)
            return error_response(status_code, exc.code, exc.message)
        except Exception:
            logger.exception("http.unhandled_error", path=request.url.path)
            return error_response(500, "INTERNAL_ERROR", "An unexpected error occurred")


def setup_middleware(app: FastAPI) -> None:
    """Register middleware; the last one added is the outermost."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_settings().cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(RequestContextMiddleware)
