"""
Request tracing middleware.

Binds a request id (incoming X-Request-ID or a fresh one) and, on search
routes, the raw search text into the log context, so the orchestrator's
index / fallback / telemetry events can be tied back to one request.
Probe endpoints are logged at debug to keep them out of production logs.
"""

import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from core.logging import bind_context, clear_context, get_logger

logger = get_logger(__name__)


REQUEST_ID_HEADER = "X-Request-ID"
RESPONSE_TIME_HEADER = "X-Response-Time-Ms"
PROBE_PATHS = frozenset({"/health", "/health/detailed", "/ready", "/live"})


class RequestTracingMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        path = request.url.path

        clear_context()
        bind_context(request_id=request_id, method=request.method, path=path)
        search_text = request.query_params.get("q")
        if search_text and path.startswith("/api/search"):
            bind_context(search_text=search_text[:200])

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            raise
        else:
            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            log = logger.debug if path in PROBE_PATHS else logger.info
            if response.status_code >= 500:
                log = logger.warning
            log("Request completed", status_code=response.status_code, duration_ms=duration_ms)

            response.headers[REQUEST_ID_HEADER] = request_id
            response.headers[RESPONSE_TIME_HEADER] = str(duration_ms)
            return response
        finally:
            clear_context()
