import time
import uuid
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars

from coffeevibes.core.config import settings

log = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"
# Polled by load balancers; logged at debug only
QUIET_PATHS = {"/health"}


class LoggingMiddleware(BaseHTTPMiddleware):
    """Binds request and user context for every log line and records one event per request."""

    def __init__(self, app, slow_request_ms: float = None):
        super().__init__(app)
        self.slow_request_ms = slow_request_ms if slow_request_ms is not None else settings.SLOW_REQUEST_MS

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        clear_contextvars()

        # Mobile clients retry with the same id, so keep theirs when present
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        bind_contextvars(
            request_id=request_id,
            http_method=request.method,
            path=request.url.path,
        )
        user_id = request.headers.get("x-user-id")
        if user_id:
            bind_contextvars(user_id=user_id.strip())
        request.state.request_id = request_id

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            log.exception(
                "http_request_failed",
                elapsed_ms=round((time.perf_counter() - start_time) * 1000, 2),
                error=str(e),
            )
            raise

        elapsed_ms = round((time.perf_counter() - start_time) * 1000, 2)
        if request.url.path in QUIET_PATHS:
            log.debug("http_request", status_code=response.status_code, elapsed_ms=elapsed_ms)
        elif elapsed_ms > self.slow_request_ms:
            log.warning("http_request_slow", status_code=response.status_code, elapsed_ms=elapsed_ms)
        else:
            log.info("http_request", status_code=response.status_code, elapsed_ms=elapsed_ms)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
