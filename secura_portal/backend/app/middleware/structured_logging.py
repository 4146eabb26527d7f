# backend/app/middleware/structured_logging.py
from __future__ import annotations

import logging
import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

log = logging.getLogger("secura.request")


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """
    One log line per request: method, path, status_code, latency_ms and which
    credential family was presented (staff bearer vs client session).

    Token values are never logged.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        t0 = time.perf_counter()

        auth_kind = "anonymous"
        if request.headers.get("Authorization"):
            auth_kind = "staff"
        elif request.headers.get("X-Client-Session"):
            auth_kind = "client"

        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            log.info(
                "http_request %s %s -> %s (%dms)",
                request.method,
                request.url.path,
                status_code,
                int((time.perf_counter() - t0) * 1000),
                extra={
                    "actor_role": auth_kind,
                    "path": request.url.path,
                },
            )
