"""
Middleware and exception handlers for the asset query FastAPI application.

Middleware:
- trace_id_middleware: adopts the caller's X-Trace-ID or mints one
- logging_middleware: request start/finish records; for event streams the
  finish record is written when the last frame has been sent
- security_headers_middleware: conservative browser headers

Exception handlers map errors raised before a query stream starts onto a
uniform ErrorResponse body. Failures after the first frame never reach
them; the query service ends the stream with an [ERROR] frame instead.

Usage in main.py:
    from .api.middleware import register_exception_handlers
    register_exception_handlers(app)
"""

import time
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Dict, Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..utils.logging import get_module_logger
from ..utils.tracing import generate_trace_id, set_trace_id, current_trace_id
from ..domain.responses import ErrorResponse
from ..domain.errors import AssetQueryException

logger = get_module_logger()

TRACE_HEADER = "X-Trace-ID"
EVENT_STREAM = "text/event-stream"

_HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    500: "INTERNAL_ERROR",
    503: "SERVICE_UNAVAILABLE",
}

GENERIC_ERROR_MESSAGE = "An internal server error occurred. Please try again later."


# =============================================================================
# Middleware Functions
# =============================================================================


async def trace_id_middleware(request: Request, call_next: Callable) -> Response:
    trace_id = request.headers.get(TRACE_HEADER) or generate_trace_id()
    set_trace_id(trace_id)

    response = await call_next(request)
    response.headers[TRACE_HEADER] = trace_id
    return response


async def _log_when_drained(
    body: AsyncIterator[bytes],
    started: float,
    fields: Dict[str, Any],
) -> AsyncIterator[bytes]:
    chunks = 0
    try:
        async for chunk in body:
            chunks += 1
            yield chunk
    finally:
        logger.info(
            "Event stream closed",
            chunks=chunks,
            stream_duration_ms=round((time.perf_counter() - started) * 1000, 2),
            **fields,
        )


async def logging_middleware(request: Request, call_next: Callable) -> Response:
    """
    Log each request twice: on arrival and when the response is complete.

    X-Process-Time is time to the response head; for a query stream that
    is before the model has produced anything.
    """
    started = time.perf_counter()
    fields = {
        "method": request.method,
        "path": request.url.path,
        "trace_id": current_trace_id(),
    }

    logger.info(
        "HTTP request started",
        user_agent=request.headers.get("user-agent"),
        client_ip=request.client.host if request.client else None,
        **fields,
    )

    response = await call_next(request)

    head_ms = round((time.perf_counter() - started) * 1000, 2)
    response.headers["X-Process-Time"] = str(head_ms)

    if response.headers.get("content-type", "").startswith(EVENT_STREAM):
        logger.info("Event stream opened", status_code=response.status_code, head_ms=head_ms, **fields)
        response.body_iterator = _log_when_drained(response.body_iterator, started, fields)
    else:
        logger.info("HTTP request completed", status_code=response.status_code, duration_ms=head_ms, **fields)

    return response


async def security_headers_middleware(request: Request, call_next: Callable) -> Response:
    response = await call_next(request)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

    return response


# =============================================================================
# Exception Handlers
# =============================================================================


def _error_json(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None
) -> JSONResponse:
    """
    Uniform error body:

        {"error": "service_unavailable", "message": "...", "details": {...},
         "trace_id": "...", "timestamp": "..."}
    """
    trace_id = current_trace_id()

    body = ErrorResponse(
        error=error_code.lower(),
        message=message,
        details=details,
        trace_id=trace_id,
        timestamp=datetime.now(timezone.utc)
    )

    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", exclude_none=True),
        headers={TRACE_HEADER: trace_id} if trace_id else None
    )


def _log_http_error(status_code: int, message: str, request: Request, **fields: Any) -> None:
    log = logger.warning if status_code < 500 else logger.error
    log(
        message,
        status_code=status_code,
        path=request.url.path,
        method=request.method,
        trace_id=current_trace_id(),
        **fields
    )


async def asset_query_exception_handler(request: Request, exc: AssetQueryException) -> JSONResponse:
    _log_http_error(
        exc.http_status,
        f"{type(exc).__name__}: {exc.message}",
        request,
        error_code=exc.error_code,
        details=exc.details,
    )
    return _error_json(exc.http_status, exc.error_code, exc.message, exc.details or None)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Missing or empty prompt, wrong field types."""
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        }
        for error in exc.errors()
    ]

    _log_http_error(422, "Request validation failed", request, errors=errors)
    return _error_json(422, "VALIDATION_ERROR", "Request validation failed", {"errors": errors})


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown routes, wrong methods."""
    error_code = _HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
    message = str(exc.detail) if exc.detail else f"HTTP {exc.status_code} error"

    _log_http_error(exc.status_code, f"HTTP {exc.status_code}: {message}", request, error_code=error_code)
    return _error_json(exc.status_code, error_code, message)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Stack trace goes to the logs only
    logger.error(
        "Unhandled exception occurred",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        trace_id=current_trace_id(),
        exc_info=True
    )
    return _error_json(500, "INTERNAL_ERROR", GENERIC_ERROR_MESSAGE)


def register_exception_handlers(app: FastAPI) -> None:
    # FastAPI's add_exception_handler typing doesn't accept subclass-specific handlers
    app.add_exception_handler(AssetQueryException, asset_query_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, general_exception_handler)


# =============================================================================
# OpenAPI Error Response Models (for documentation)
# =============================================================================

def _example(error: str, message: str, **extra: Any) -> Dict[str, Any]:
    return {
        "application/json": {
            "example": {
                "error": error,
                "message": message,
                **extra,
                "trace_id": "550e8400-e29b-41d4-a716-446655440000",
                "timestamp": "2026-01-15T10:30:00Z",
            }
        }
    }


ERROR_RESPONSES = {
    422: {
        "description": "Validation Error - missing or empty prompt",
        "content": _example(
            "validation_error",
            "Request validation failed",
            details={"errors": [{"field": "body.prompt", "message": "Field required", "type": "missing"}]},
        ),
    },
    500: {
        "description": "Internal Server Error - An unexpected error occurred",
        "content": _example("internal_error", GENERIC_ERROR_MESSAGE),
    },
    503: {
        "description": "Service Unavailable - The database or text-generation service is not available",
        "content": _example("service_unavailable", "Text generation service is not available"),
    },
}
