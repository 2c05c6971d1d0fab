"""
CollegeSync - HTTP Middleware
Request correlation ids, timing and access logging
"""

import logging
import time
from typing import Callable, Set
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.logging_config import (
    logger,
    set_request_id,
    set_user_id,
    generate_request_id,
)

REQUEST_ID_HEADER = "X-Request-ID"
RESPONSE_TIME_HEADER = "X-Response-Time"

# Probes and docs are served without access log lines
SKIP_LOGGING_PATHS: Set[str] = {
    "/health",
    "/api/v1/health",
    "/docs",
    "/redoc",
    "/openapi.json",
}

SLOW_REQUEST_MS = 1000


def should_skip_logging(path: str) -> bool:
    return path in SKIP_LOGGING_PATHS


def level_for_status(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Tags every request with a correlation id (taken from the caller's
    X-Request-ID when present), times it and writes one access log line.

    The user id context is filled in later by the auth dependency and
    cleared here once the response is produced.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()
        set_request_id(request_id)
        path = request.url.path
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                f"{request.method} {path} - unhandled {type(exc).__name__}",
                exc_info=True,
                extra={
                    "event_type": "http_request_error",
                    "http_method": request.method,
                    "http_path": path,
                    "duration_ms": (time.perf_counter() - started) * 1000,
                },
            )
            raise
        finally:
            duration_ms = (time.perf_counter() - started) * 1000

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers[RESPONSE_TIME_HEADER] = f"{duration_ms:.2f}ms"

        if not should_skip_logging(path):
            logger.log(
                level_for_status(response.status_code),
                f"{request.method} {path} - {response.status_code} ({duration_ms:.2f}ms)",
                extra={
                    "event_type": "http_request_complete",
                    "http_method": request.method,
                    "http_path": path,
                    "http_status": response.status_code,
                    "duration_ms": duration_ms,
                },
            )
            if duration_ms > SLOW_REQUEST_MS:
                logger.warning(f"Slow request: {request.method} {path} took {duration_ms:.2f}ms")

        set_request_id("")
        set_user_id("")
        return response


__all__ = [
    "RequestLoggingMiddleware",
    "should_skip_logging",
    "level_for_status",
    "SKIP_LOGGING_PATHS",
]
