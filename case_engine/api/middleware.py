"""Request tracing middleware and structured exception handlers.

Every request gets a unique ID (from X-Request-ID header or generated),
which is bound to structlog contextvars so all log lines within a
request are correlated. Prometheus counters and histograms are recorded
per route template, so per-case URLs do not explode label cardinality.
Exception handlers translate CaseEngineError subclasses into structured
ErrorResponse JSON; the API never leaks stack traces.
"""

import time
import uuid
from typing import Any

import structlog
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from case_engine.core.exceptions import (
    AlreadyClaimed,
    ConflictError,
    CaseEngineError,
    ForbiddenError,
    InvalidTransition,
    LexiconError,
    NotClaimant,
    NotFoundError,
    ProviderUnavailable,
    StaleState,
)
from case_engine.models.responses import ErrorResponse

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
)


def _endpoint_label(request: Request) -> str:
    """Route template (``/api/v1/cases/{case_id}``) when matched, raw path otherwise."""
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path if isinstance(path, str) else request.url.path


class RequestTracingMiddleware(BaseHTTPMiddleware):
    """Assign a request ID, bind structured log context, and record metrics."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        user_id = request.headers.get("X-User-ID")
        if user_id:
            structlog.contextvars.bind_contextvars(user_id=user_id)

        start = time.perf_counter()
        logger.info(
            "request_started",
            method=request.method,
            path=str(request.url.path),
        )

        try:
            response = await call_next(request)
        except Exception:
            duration = time.perf_counter() - start
            logger.exception(
                "request_failed",
                method=request.method,
                path=str(request.url.path),
                duration_seconds=round(duration, 4),
            )
            response = JSONResponse(
                status_code=500,
                content=_error_body("internal_server_error", "An unexpected error occurred.", {}),
            )

        duration = time.perf_counter() - start
        endpoint = _endpoint_label(request)

        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).inc()
        REQUEST_LATENCY.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)

        response.headers["X-Request-ID"] = request_id

        logger.info(
            "request_completed",
            method=request.method,
            path=str(request.url.path),
            status_code=response.status_code,
            duration_seconds=round(duration, 4),
        )
        return response


# ---------------------------------------------------------------------------
# Exception -> JSON response handlers
# ---------------------------------------------------------------------------

_STATUS_CODES: dict[type[CaseEngineError], tuple[int, str]] = {
    NotFoundError: (404, "not_found"),
    ForbiddenError: (403, "forbidden"),
    ConflictError: (409, "conflict"),
    NotClaimant: (403, "not_claimant"),
    InvalidTransition: (409, "invalid_transition"),
    StaleState: (409, "stale_state"),
    AlreadyClaimed: (409, "already_claimed"),
    ProviderUnavailable: (422, "provider_unavailable"),
    LexiconError: (500, "lexicon_error"),
}


def _request_id() -> str | None:
    """Pull the current request ID from structlog context, if bound."""
    ctx: dict[str, str] = structlog.contextvars.get_contextvars()
    return ctx.get("request_id")


def _error_body(error: str, message: str, details: dict[str, Any]) -> dict[str, Any]:
    return ErrorResponse(
        error=error,
        message=message,
        details=details,
        request_id=_request_id(),
    ).model_dump()


def register_exception_handlers(app: FastAPI) -> None:
    """Attach structured error handlers to the app."""

    @app.exception_handler(CaseEngineError)
    async def _case_engine(request: Request, exc: CaseEngineError) -> JSONResponse:
        status_code, error = 500, "internal_error"
        for exc_type in type(exc).__mro__:
            if exc_type in _STATUS_CODES:
                status_code, error = _STATUS_CODES[exc_type]
                break

        details = dict(exc.details)
        if isinstance(exc, StaleState):
            details["retryable"] = True

        if status_code >= 500:
            logger.error(
                "case_engine_error",
                error_type=type(exc).__name__,
                message=exc.message,
                details=exc.details,
            )
        else:
            logger.info(
                "request_rejected",
                error=error,
                status_code=status_code,
                message=exc.message,
            )
        return JSONResponse(status_code=status_code, content=_error_body(error, exc.message, details))

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled_error", error_type=type(exc).__name__)
        return JSONResponse(
            status_code=500,
            content=_error_body("internal_server_error", "An unexpected error occurred.", {}),
        )
