"""Request/response logging middleware"""

import logging
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# Paths polled by load balancers; logged at debug level only
QUIET_PATHS = ("/health",)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log one line per request with status and timing"""

    def __init__(self, app, slow_request_seconds: float = 2.0):
        super().__init__(app)
        self.slow_request_seconds = slow_request_seconds

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        request_id = getattr(request.state, "request_id", "unknown")

        try:
            response: Response = await call_next(request)
        except Exception:
            logger.exception(
                "Request failed",
                extra={
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                },
            )
            raise

        process_time = round(time.perf_counter() - start_time, 4)
        response.headers["X-Process-Time"] = str(process_time)

        level = logging.DEBUG if request.url.path.startswith(QUIET_PATHS) else logging.INFO
        logger.log(
            level,
            "Request completed",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                # Never log the bearer token; only whether one was sent
                "authenticated": "authorization" in request.headers,
                "client_host": request.client.host if request.client else "unknown",
                "status_code": response.status_code,
                "process_time": process_time,
            },
        )

        if process_time > self.slow_request_seconds:
            logger.warning(
                "Slow request detected",
                extra={
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "process_time": process_time,
                },
            )

        return response
