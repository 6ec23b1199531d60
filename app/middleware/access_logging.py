"""Access logging middleware using structlog with request id and OTEL trace correlation."""

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
MAX_REQUEST_ID_LENGTH = 128


def _request_id(request: Request) -> str:
    """Reuse a caller-supplied request id when it is usable, otherwise generate one."""
    incoming = request.headers.get(REQUEST_ID_HEADER.lower(), "").strip()
    if incoming and len(incoming) <= MAX_REQUEST_ID_LENGTH:
        return incoming
    return uuid.uuid4().hex


class AccessLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that logs HTTP requests with structured data.

    Every log line emitted while a request is handled carries its ``request_id``,
    which is also echoed in the ``X-Request-ID`` response header.

    Log fields:
        - request_id: Caller-supplied or generated request id
        - method: HTTP method (GET, POST, etc.)
        - path: Request path
        - status_code: Response status code
        - duration_ms: Request duration in milliseconds
        - client_ip: Client IP address
        - forwarded_for: First X-Forwarded-For hop, when present
        - trace_id/span_id: Automatically added by OTEL processor
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Process request and log access information."""
        start_time = time.perf_counter()
        request_id = _request_id(request)

        # X-Forwarded-For can be spoofed; both values are logged and the reader decides
        client_ip = request.client.host if request.client else "unknown"
        forwarded_for = None
        if xff_header := request.headers.get("x-forwarded-for"):
            forwarded_for = xff_header.split(",")[0].strip()

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            response = await call_next(request)

            duration_ms = (time.perf_counter() - start_time) * 1000
            log_kwargs: dict[str, str | int | float | None] = {
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            }
            if forwarded_for:
                log_kwargs["forwarded_for"] = forwarded_for

            logger.info("http_request", **log_kwargs)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
