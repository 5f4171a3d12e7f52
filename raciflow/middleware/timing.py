"""
Request timing middleware.

Every response gets X-Request-ID (echoed from the request when the client
sent one) and X-Request-Duration-Ms.  Each request is logged once, at DEBUG,
WARNING when slower than SLOW_THRESHOLD_MS, or ERROR on a 5xx.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

SLOW_THRESHOLD_MS = 1000

# Polled by load balancers; not logged
_QUIET_PATHS = frozenset({"/api/v1/health"})

# URL parameters promoted to structured log fields
_ID_ARGS = ("process_id", "department_id", "role_id", "action_id", "step_id")


def _log_level(status: int, duration_ms: float) -> int:
    if status >= 500:
        return logging.ERROR
    if duration_ms > SLOW_THRESHOLD_MS:
        return logging.WARNING
    return logging.DEBUG


def init_request_timing(app: Flask):
    """Register the before/after request hooks on ``app``."""

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _finish_timer(response):
        start = getattr(g, "request_start", None)
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        if request.path in _QUIET_PATHS:
            return response

        view_args = request.view_args or {}
        extra = {
            "method": request.method,
            "path": request.path,
            "status": response.status_code,
            "duration_ms": duration_ms,
            "remote_addr": request.remote_addr,
            **{key: view_args[key] for key in _ID_ARGS if key in view_args},
        }
        logger.log(
            _log_level(response.status_code, duration_ms),
            "%s %s %d (%.0fms)", request.method, request.path, response.status_code, duration_ms,
            extra=extra,
        )
        return response
