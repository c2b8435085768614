import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from vibecode.common.logging import get_logger

logger = get_logger("middleware")

QUIET_PATHS = ("/health", "/metrics")


class AuditMiddleware(BaseHTTPMiddleware):
    """Log each request with a request id and its handling time.

    For event streams the duration covers producing the response headers,
    not the whole stream.  Probe endpoints are logged at DEBUG.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000

        log = logger.debug if request.url.path in QUIET_PATHS else logger.info
        log(
            "[%s] %s %s %d %.1fms",
            request_id,
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        return response
