"""Request timing and tracing middleware for the order service."""
import time
import uuid
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("pharma-erp.middleware")

SKIP_LOG_PATHS = {"/health"}


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that:
    - Reuses the caller's X-Request-ID, or assigns a uuid4 one.
    - Adds X-Process-Time (ms) to every response.
    - Emits one structured log line per request (except /health), tagged with
      the order id when the route addresses a single order.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        start_time = time.perf_counter()

        # Route handlers read this to tag their own log lines
        request.state.request_id = request_id

        response: Response = await call_next(request)

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(duration_ms)

        if request.url.path in SKIP_LOG_PATHS:
            return response

        extra = {
            "http_method": request.method,
            "http_path": request.url.path,
            "http_status": response.status_code,
            "request_id": request_id,
            "duration_ms": duration_ms,
        }
        # Filled in by the router once the path has matched
        order_id = request.scope.get("path_params", {}).get("order_id")
        if order_id is not None:
            extra["order_id"] = order_id

        if response.status_code >= 500:
            logger.error("order request failed", extra=extra)
        else:
            logger.info("request completed", extra=extra)
        return response
