"""FastAPI middleware stack — request ID, access logging, HTTP metrics."""

from __future__ import annotations

import time
import uuid
from collections.abc import Awaitable, Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from marketing_bot.shared.observability.metrics import HTTP_REQUEST_DURATION, HTTP_REQUESTS_TOTAL

logger = structlog.get_logger(__name__)

Handler = Callable[[Request], Awaitable[Response]]

# Polled by the dashboard and the scraper; logged at debug only
PROBE_SUFFIXES = ("/health", "/metrics", "/models/status")


def _route_template(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Propagates ``X-Request-ID`` and binds it to every log line of the request."""

    async def dispatch(self, request: Request, call_next: Handler) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")
        response.headers["X-Request-ID"] = request_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """One ``http_request`` event per request; probe endpoints go to debug."""

    async def dispatch(self, request: Request, call_next: Handler) -> Response:
        start = time.monotonic()
        response = await call_next(request)
        elapsed_ms = round((time.monotonic() - start) * 1000, 2)

        path = request.url.path
        emit = logger.debug if path.endswith(PROBE_SUFFIXES) else logger.info
        emit(
            "http_request",
            method=request.method,
            path=path,
            status=response.status_code,
            duration_ms=elapsed_ms,
            client=request.client.host if request.client else "unknown",
        )
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    """Prometheus request counter and latency histogram.

    Labelled by route template so ``/models/{entry_id}/reset`` stays one
    series however many pool entries exist.
    """

    async def dispatch(self, request: Request, call_next: Handler) -> Response:
        start = time.monotonic()
        response = await call_next(request)
        duration = time.monotonic() - start

        endpoint = _route_template(request)
        HTTP_REQUESTS_TOTAL.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).inc()
        HTTP_REQUEST_DURATION.labels(method=request.method, endpoint=endpoint).observe(duration)
        return response
