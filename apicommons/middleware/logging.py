"""
ApiCommons — Request Context & Access Logging Middleware
=========================================================

What:  Assigns a correlation ID to each request and writes one access log
       line per response.
How:   Reuses a client-sent X-Request-ID or generates a short UUID, stores
       it in a ContextVar (read by every logger call in the pipeline) and in
       request.state, echoes it in the response header and logs
       method/path/status/duration at a level chosen from the status code.
When:  Outside the error boundary, so rendered failures are logged with
       their final status code.

Log line:
    POST /api/categories 201 12.3ms [a1b2c3d4] from 127.0.0.1
"""

import logging
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

# Coroutine-local correlation ID; "" outside a request
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

logger = logging.getLogger("apicommons.access")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Correlation ID propagation plus structured access logging."""

    # Health checks run every few seconds
    QUIET_PATHS = {"/health"}

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        rid = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())[:8]
        token = request_id_var.set(rid)
        request.state.request_id = rid
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers[REQUEST_ID_HEADER] = rid
        path = request.url.path
        if path in self.QUIET_PATHS:
            return response

        duration_ms = (time.perf_counter() - start_time) * 1000
        client_ip = request.client.host if request.client else "unknown"
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            request.method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )
        return response
