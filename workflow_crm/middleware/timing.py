"""
Request timing middleware.

Adds X-Request-ID and X-Request-Duration-Ms headers to every response and
logs one line per API request, tagged with the actor and the enquiry the
URL addresses.  Successful workflow writes (non-GET on enquiry, design,
production and dispatch routes) log at INFO, other requests at DEBUG.
"""

import logging
import time
import uuid

from flask import Flask, g, request

from workflow_crm.middleware.logging_config import request_log_context

logger = logging.getLogger(__name__)

_SKIP_PREFIXES = ("/api/v1/health", "/static")
_WORKFLOW_BLUEPRINTS = frozenset({"enquiry_bp", "design_bp", "production_bp", "dispatch_bp"})
_READ_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

SLOW_THRESHOLD_MS = 1000


def _is_workflow_write() -> bool:
    return request.method not in _READ_METHODS and request.blueprint in _WORKFLOW_BLUEPRINTS


def init_request_timing(app: Flask):
    """Register before/after hooks for request timing."""

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _log_request(response):
        start = g.get("request_start")
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        response.headers["X-Request-ID"] = g.get("request_id", "")

        if request.path.startswith(_SKIP_PREFIXES):
            return response

        extra = {
            **request_log_context(),
            "method": request.method,
            "path": request.path,
            "endpoint": request.endpoint,
            "status": response.status_code,
            "duration_ms": duration_ms,
            "remote_addr": request.remote_addr,
        }
        if response.status_code >= 500:
            level, label = logging.ERROR, "Server error"
        elif duration_ms > SLOW_THRESHOLD_MS:
            level, label = logging.WARNING, "Slow request"
        elif _is_workflow_write() and response.status_code < 400:
            level, label = logging.INFO, "Workflow write"
        else:
            level, label = logging.DEBUG, "Request"
        logger.log(level, "%s: %s %s %d (%.0fms)", label, request.method, request.path,
                   response.status_code, duration_ms, extra=extra)
        return response
