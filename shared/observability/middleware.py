"""Reusable FastAPI middleware for observability instrumentation."""

from __future__ import annotations

import time
from typing import Any, Awaitable, Callable, Iterable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from .logger import generate_request_id, get_logger, request_context

__all__ = [
    "CorrelationIdMiddleware",
    "RequestTimingMiddleware",
    "annotate_request",
    "request_annotations",
]

_MAX_REQUEST_ID_LENGTH = 128


def annotate_request(request: Request, **fields: Any) -> None:
    """Attach ``fields`` to the request's ``http_request_completed`` event."""

    annotations = getattr(request.state, "log_fields", None)
    if annotations is None:
        annotations = {}
        request.state.log_fields = annotations
    annotations.update(fields)


def request_annotations(request: Request) -> dict[str, Any]:
    return dict(getattr(request.state, "log_fields", None) or {})


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Populate a request identifier and propagate it through the response."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        header_name: str = "X-Request-ID",
        correlation_header: str = "X-Correlation-ID",
    ) -> None:
        super().__init__(app)
        self.header_name = header_name
        self.correlation_header = correlation_header or header_name

    def _resolve_request_id(self, request: Request) -> str:
        for header in (self.header_name, self.correlation_header):
            candidate = (request.headers.get(header) or "").strip()
            if candidate:
                return candidate[:_MAX_REQUEST_ID_LENGTH]
        return generate_request_id()

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = self._resolve_request_id(request)
        request.state.request_id = request_id

        with request_context(request_id=request_id):
            response = await call_next(request)

        response.headers.setdefault(self.header_name, request_id)
        response.headers.setdefault(self.correlation_header, request_id)
        return response


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """Measure request latency and emit structured log entries.

    Requests to ``quiet_paths`` (health checks) are logged at debug level.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        header_name: str = "X-Response-Time",
        quiet_paths: Iterable[str] = ("/health",),
    ) -> None:
        super().__init__(app)
        self._header_name = header_name
        self._quiet_paths = frozenset(quiet_paths)
        self._logger = get_logger("http")

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        start = time.perf_counter()
        log = self._logger.bind(method=request.method, path=request.url.path)

        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000.0
            log.exception("http_request_failed", duration_ms=duration_ms)
            raise

        duration_ms = (time.perf_counter() - start) * 1000.0
        if self._header_name:
            response.headers[self._header_name] = f"{duration_ms / 1000.0:.6f}s"

        emit = log.debug if request.url.path in self._quiet_paths else log.info
        emit(
            "http_request_completed",
            status_code=response.status_code,
            duration_ms=duration_ms,
            **request_annotations(request),
        )
        return response
