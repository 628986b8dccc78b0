"""Request logging middleware.

Provides canonical log line per request with trace ID propagation.
"""

import logging
import re
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from mediahost.app.config import get_settings
from mediahost.app.logging import clear_trace_context, set_trace_id
from mediahost.app.metrics.collector import HTTP_REQUEST_DURATION, HTTP_REQUESTS_TOTAL
from mediahost.core.logging_schema import Component, LogEvent

logger = logging.getLogger(__name__)

# Replace customer ids with a placeholder
_PATH_PATTERNS = [
    (
        re.compile(r"^/api/v1/admin/instances/[^/]+"),
        "/api/v1/admin/instances/:customer_id",
    ),
]

# Whitelist of known endpoints for metrics (cardinality control)
_KNOWN_ENDPOINTS = frozenset({
    # Customer
    "/api/v1/instances",
    "/api/v1/instances/me",
    "/api/v1/instances/me/start",
    "/api/v1/instances/me/stop",
    "/api/v1/instances/me/logs",
    # Admin
    "/api/v1/admin/instances",
    "/api/v1/admin/instances/:customer_id",
    "/api/v1/admin/instances/:customer_id/suspend",
    "/api/v1/admin/instances/:customer_id/resume",
    "/api/v1/admin/instances/:customer_id/restart",
    "/api/v1/admin/instances/:customer_id/backups",
    "/api/v1/admin/instances/:customer_id/activity",
    "/api/v1/admin/reconcile",
    "/api/v1/admin/storage/orphans",
    # Billing
    "/api/v1/webhooks/billing",
})

_SKIP_PATHS = ("/health", "/metrics")


def _normalize_path(path: str) -> str:
    """Normalize path and apply whitelist for cardinality control."""
    for pattern, replacement in _PATH_PATTERNS:
        path = pattern.sub(replacement, path)
    return path if path in _KNOWN_ENDPOINTS else "other"


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request logging with trace ID propagation.

    - Sets trace_id from X-Trace-ID header or generates new one
    - Logs canonical request log line (one per request)
    - Adds X-Trace-ID header to response

    Usage:
        app.add_middleware(LoggingMiddleware)
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        trace_id = set_trace_id(request.headers.get("x-trace-id"))
        path = request.url.path

        start = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.monotonic() - start) * 1000
            logger.error(
                "Request failed",
                extra={
                    "event": LogEvent.REQUEST_FAILED,
                    "component": Component.API,
                    "method": request.method,
                    "path": path,
                    "duration_ms": duration_ms,
                },
            )
            raise
        finally:
            clear_trace_context()

        duration_seconds = time.monotonic() - start
        duration_ms = duration_seconds * 1000

        if path not in _SKIP_PATHS:
            endpoint = _normalize_path(path)
            HTTP_REQUESTS_TOTAL.labels(
                method=request.method,
                path=endpoint,
                status=str(response.status_code),
            ).inc()
            HTTP_REQUEST_DURATION.labels(
                method=request.method,
                path=endpoint,
            ).observe(duration_seconds)

            logger.info(
                "Request completed",
                extra={
                    "event": LogEvent.REQUEST_COMPLETE,
                    "component": Component.API,
                    "method": request.method,
                    "path": path,
                    "status": response.status_code,
                    "duration_ms": duration_ms,
                    "trace_id": trace_id,
                },
            )

            slow_threshold_ms = get_settings().logging.slow_threshold_ms
            if duration_ms > slow_threshold_ms:
                logger.warning(
                    "Slow request detected",
                    extra={
                        "event": LogEvent.REQUEST_SLOW,
                        "method": request.method,
                        "path": path,
                        "status": response.status_code,
                        "duration_ms": duration_ms,
                        "threshold_ms": slow_threshold_ms,
                        "trace_id": trace_id,
                    },
                )

        response.headers["X-Trace-ID"] = trace_id
        return response
