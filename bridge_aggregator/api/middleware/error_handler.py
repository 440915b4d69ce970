"""
Error Handling
==============

Two layers turn exceptions into HTTP responses:

1. Exception handlers (``register_exception_handlers``) map the domain
   hierarchy to status codes:

       ValidationError          → 400 with per-field details
       RateLimitExceededError   → 429 with Retry-After and X-RateLimit-* headers
       CacheError               → 503
       BridgeAggregatorError    → 500

2. ``ErrorHandlingMiddleware`` is the catch-all for anything else, so an
   unexpected exception still yields a JSON 500 instead of a dropped
   connection. Tracebacks are only included in development.
"""

import traceback
from collections.abc import Callable

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from bridge_aggregator.core.config.constants import (
    HEADER_RATE_LIMIT_LIMIT,
    HEADER_RATE_LIMIT_REMAINING,
    HEADER_RATE_LIMIT_RESET,
    HEADER_REQUEST_ID,
    HEADER_RETRY_AFTER,
)
from bridge_aggregator.core.exceptions import (
    BridgeAggregatorError,
    CacheError,
    RateLimitExceededError,
    ValidationError,
)
from bridge_aggregator.core.logging.logger import get_logger, get_request_id
from bridge_aggregator.infrastructure.monitoring.metrics_collector import get_metrics_collector

logger = get_logger(__name__)


def _error_body(exc: BridgeAggregatorError, error: str) -> dict:
    body = exc.to_dict()
    body["success"] = False
    body["error"] = error
    body["request_id"] = exc.request_id or get_request_id()
    return body


def _request_id_headers() -> dict[str, str]:
    request_id = get_request_id()
    return {HEADER_REQUEST_ID: request_id} if request_id else {}


def rate_limit_headers(limit: int, remaining: int, reset_at: int | None) -> dict[str, str]:
    headers = {
        HEADER_RATE_LIMIT_LIMIT: str(limit),
        HEADER_RATE_LIMIT_REMAINING: str(remaining),
    }
    if reset_at is not None:
        headers[HEADER_RATE_LIMIT_RESET] = str(reset_at)
    return headers


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    body = _error_body(exc, "validation_error")
    body["details"] = exc.fields
    return JSONResponse(status_code=400, content=body, headers=_request_id_headers())


async def rate_limit_handler(request: Request, exc: RateLimitExceededError) -> JSONResponse:
    headers = rate_limit_headers(exc.limit, exc.remaining, exc.reset_at)
    headers[HEADER_RETRY_AFTER] = str(exc.retry_after_seconds)
    headers.update(_request_id_headers())
    return JSONResponse(
        status_code=429,
        content=_error_body(exc, "rate_limit_exceeded"),
        headers=headers,
    )


async def cache_error_handler(request: Request, exc: CacheError) -> JSONResponse:
    logger.error("Cache store unavailable", error=exc.message, path=request.url.path)
    get_metrics_collector().record_error(type(exc).__name__, "cache")
    return JSONResponse(
        status_code=503,
        content=_error_body(exc, "service_unavailable"),
        headers=_request_id_headers(),
    )


async def aggregator_error_handler(request: Request, exc: BridgeAggregatorError) -> JSONResponse:
    logger.error(f"Aggregator exception: {exc.message}", error_type=type(exc).__name__)
    get_metrics_collector().record_error(type(exc).__name__, "aggregator")
    return JSONResponse(
        status_code=500,
        content=_error_body(exc, "internal_error"),
        headers=_request_id_headers(),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Map the exception hierarchy to HTTP responses; most specific first."""
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(RateLimitExceededError, rate_limit_handler)
    app.add_exception_handler(CacheError, cache_error_handler)
    app.add_exception_handler(BridgeAggregatorError, aggregator_error_handler)


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """
    Last line of defense for unhandled exceptions.

    Logs the failure with its traceback, records an error metric and
    returns a generic JSON 500.
    """

    def __init__(self, app, include_traceback: bool = False):
        super().__init__(app)
        self.include_traceback = include_traceback

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as e:
            error_type = type(e).__name__
            logger.error(
                f"Unhandled exception in request: {request.method} {request.url.path}",
                method=request.method,
                path=request.url.path,
                error_type=error_type,
                error_message=str(e),
                exc_info=True,
            )
            get_metrics_collector().record_error(error_type, "unhandled_exception")

            error_response = {
                "success": False,
                "error": "internal_server_error",
                "message": "An unexpected error occurred while processing your request",
                "error_type": error_type,
                "request_id": get_request_id(),
            }
            if self.include_traceback:
                error_response["traceback"] = traceback.format_exc()
                error_response["detail"] = str(e)

            return JSONResponse(status_code=500, content=error_response)
