"""
Twitter Clone Backend — Access Logging Middleware
===================================================

What:  One structured log record per completed HTTP request.
Why:   Latency and status per route are the first thing to look at when
       the API misbehaves.
How:   Measures wall-clock time around the downstream call and logs on the
       way out. An unexpected exception from a handler is logged with its
       traceback and rendered as a generic 500 here, so the response still
       passes back through CORS.
Who:   Applied to every admitted request via Starlette middleware.
When:  After the rate limiter (rejected requests are not logged here).

Record fields (also attached as `extra` for structured handlers):
    timestamp, status, latency_ms, host, method, path, query

Logging must never break a request: any error raised while emitting the
record is discarded.
"""

import logging
import time
from datetime import datetime, timezone

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from twitterclone.exceptions import internal_error_response

logger = logging.getLogger("twitterclone.access")
error_logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs method, path, status, latency and host for each request.

    Level follows the status class:
        5xx → ERROR, 4xx → WARNING, everything else → INFO
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as exc:
            error_logger.error(
                "Unexpected error on %s %s: %s",
                request.method,
                request.url.path,
                exc,
                exc_info=True,
            )
            self._log(request, 500, start_time)
            return internal_error_response()

        self._log(request, response.status_code, start_time)
        return response

    def _log(self, request: Request, status: int, start_time: float) -> None:
        try:
            latency_ms = max((time.perf_counter() - start_time) * 1000, 0.0)
            host = request.headers.get("host") or request.url.netloc
            method = request.method
            path = request.url.path
            query = request.url.query

            if status >= 500:
                log_level = logging.ERROR
            elif status >= 400:
                log_level = logging.WARNING
            else:
                log_level = logging.INFO

            logger.log(
                log_level,
                "%d | %.3fms - %s | %s | %s %s",
                status,
                latency_ms,
                host,
                method,
                path,
                query,
                extra={
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "status": status,
                    "latency_ms": round(latency_ms, 3),
                    "host": host,
                    "method": method,
                    "path": path,
                    "query": query,
                },
            )
        except Exception:  # noqa: BLE001
            # Access logging is best effort
            pass
