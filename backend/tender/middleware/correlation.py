"""
Correlation ID middleware
=========================
Injects a unique X-Correlation-ID into every request so that all log lines
for a single HTTP call (upload, analysis, retries) share the same identifier.
"""
from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

HEADER = "X-Correlation-ID"


class CorrelationMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        # Accept from client or generate fresh
        correlation_id = request.headers.get(HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        started = time.perf_counter()
        logger.info("[%s] %s %s", correlation_id, request.method, request.url.path)

        response = await call_next(request)

        logger.info(
            "[%s] %s %s -> %d (%.0f ms)",
            correlation_id, request.method, request.url.path,
            response.status_code, (time.perf_counter() - started) * 1000,
        )
        response.headers[HEADER] = correlation_id
        return response
