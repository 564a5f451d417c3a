"""
Request timing middleware.

Every response carries ``X-Request-ID`` (echoed from the caller when sent)
and ``X-Request-Duration-Ms``. Requests slower than SLOW_THRESHOLD_MS log a
warning; matching and generation calls are the usual culprits, so the
threshold is configurable through ``SLOW_REQUEST_MS``.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

# probes are polled constantly
_QUIET_PATHS = frozenset({"/api/v1/health/live", "/api/v1/health/ready"})

SLOW_THRESHOLD_MS = 3000


def _request_fields(status: int, duration_ms: float) -> dict:
    view_args = request.view_args or {}
    return {
        "method": request.method,
        "path": request.path,
        "status": status,
        "duration_ms": duration_ms,
        "remote_addr": request.remote_addr,
        "request_id": g.get("request_id"),
        "session_id": view_args.get("sid"),
        "cu_code": view_args.get("cu"),
    }


def init_request_timing(app: Flask):
    """Register the before/after hooks on *app*."""
    slow_ms = app.config.get("SLOW_REQUEST_MS", SLOW_THRESHOLD_MS)

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _finish(response):
        start = g.get("request_start")
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = g.get("request_id", "")
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"

        if request.path in _QUIET_PATHS:
            return response

        extra = _request_fields(response.status_code, duration_ms)
        if response.status_code >= 500:
            logger.error("%s %s -> %d (%.0fms)", request.method, request.path,
                         response.status_code, duration_ms, extra=extra)
        elif duration_ms > slow_ms:
            logger.warning("Slow request %s %s -> %d (%.0fms)", request.method, request.path,
                           response.status_code, duration_ms, extra=extra)
        else:
            logger.debug("%s %s -> %d", request.method, request.path, response.status_code, extra=extra)
        return response
