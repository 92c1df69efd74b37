"""Request logging middleware for FastAPI.

Logs every API request with:
- Request ID (echoed back as ``X-Request-ID`` and stamped on every log line
  written while the request runs)
- HTTP method, path and response status
- Duration
- Client IP address

Client IP and user agent are also what signature capture records, so the
helper below is shared with the identity dependency.
"""

import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from reviewflow.core.logger import request_id_var

logger = logging.getLogger(__name__)

# Paths that should not be logged
EXCLUDED_PATHS = {
    "/health",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/favicon.ico",
}


def get_client_ip(request: Request) -> str:
    """Extract client IP from request, handling proxies."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        # First entry is the original client
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return "unknown"


def log_level_for(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tags each request with an ID and logs its outcome."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())[:8]
        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        try:
            return await self._handle(request, call_next, request_id)
        finally:
            request_id_var.reset(token)

    async def _handle(self, request: Request, call_next: Callable, request_id: str) -> Response:
        if request.url.path in EXCLUDED_PATHS:
            return await call_next(request)

        start_time = time.time()
        response = await call_next(request)
        duration_ms = int((time.time() - start_time) * 1000)

        logger.log(
            log_level_for(response.status_code),
            "%s %s -> %d (%dms) from %s",
            request.method, request.url.path,
            response.status_code, duration_ms, get_client_ip(request),
        )
        response.headers["X-Request-ID"] = request_id
        return response
