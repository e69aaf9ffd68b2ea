"""Structured logging and request correlation middleware.

Provides:
- Request-ID generation and propagation (X-Request-ID)
- JSON log lines with correlation fields
- Per-request latency (X-Process-Time)
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Callable

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

HTTP_LOGGER_NAME = "provisioner.http"
_UNLOGGED_PATHS = frozenset({"/health"})
_CORRELATION_FIELDS = ("request_id", "method", "path", "status", "latency_ms")


class JSONFormatter(logging.Formatter):
    """Format log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        log_data = {
            "timestamp": dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in _CORRELATION_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_data[name] = value
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


def configure_logging(level: str = "INFO", *, structured: bool = True) -> None:
    """Configure the ``provisioner`` logger hierarchy.

    Idempotent: a handler is installed only once.
    """
    logger = logging.getLogger("provisioner")
    logger.setLevel(level.upper())
    if any(getattr(h, "_provisioner_handler", False) for h in logger.handlers):
        return
    handler = logging.StreamHandler()
    handler._provisioner_handler = True  # type: ignore[attr-defined]
    if structured:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
    logger.addHandler(handler)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Generate or propagate X-Request-ID and report latency."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        start_time = time.perf_counter()

        response = await call_next(request)

        latency_ms = (time.perf_counter() - start_time) * 1000
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{latency_ms:.2f}ms"
        return response


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with method, path, status and latency.

    INFO for success, WARNING for 4xx, ERROR for 5xx; health checks are
    not logged.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        logger = logging.getLogger(HTTP_LOGGER_NAME)
        start_time = time.perf_counter()

        response = await call_next(request)

        path = request.url.path
        if path in _UNLOGGED_PATHS:
            return response

        if response.status_code >= 500:
            level = logging.ERROR
        elif response.status_code >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO

        logger.log(
            level,
            "%s %s -> %s",
            request.method,
            path,
            response.status_code,
            extra={
                "request_id": getattr(request.state, "request_id", None),
                "method": request.method,
                "path": path,
                "status": response.status_code,
                "latency_ms": round((time.perf_counter() - start_time) * 1000, 2),
            },
        )
        return response


def add_logging_middleware(app: FastAPI) -> None:
    """Add request correlation and structured request logging to ``app``.

    RequestIDMiddleware is added last so it runs first and the request id is
    available to the logging middleware.
    """
    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)


def get_request_id(request: Request) -> str:
    """Return the current request's correlation id."""
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())
