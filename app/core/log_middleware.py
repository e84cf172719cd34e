"""
Request correlation for logs.

Every request gets a request id (taken from ``X-Request-ID`` when the
caller sends one) and a correlation id that follows the work into the
background pipeline, since BackgroundTasks inherit the request's
contextvars. Both are echoed back as response headers.
"""
from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.structured_logging import correlation_id_var, request_id_var

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "x-request-id"
CORRELATION_ID_HEADER = "x-correlation-id"

# Polled by monitors; logging each hit only adds noise
QUIET_PATHS = frozenset({"/api/health"})


class CorrelationMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        correlation_id = request.headers.get(CORRELATION_ID_HEADER) or request_id

        tokens = (request_id_var.set(request_id), correlation_id_var.set(correlation_id))
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            if request.url.path not in QUIET_PATHS or status_code >= 400:
                logger.info(
                    "request_completed",
                    extra={
                        "http.method": request.method,
                        "http.path": request.url.path,
                        "http.status_code": status_code,
                        "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                    },
                )
            request_id_var.reset(tokens[0])
            correlation_id_var.reset(tokens[1])

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers[CORRELATION_ID_HEADER] = correlation_id
        return response
