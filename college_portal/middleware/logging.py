"""Request logging middleware."""

import logging
import time
from typing import Callable
from uuid import uuid4

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging requests and responses."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Reuse the caller's request ID when it sends one
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        request.state.request_id = request_id

        start_time = time.perf_counter()
        logger.info(
            f"[REQUEST] {request.method} {request.url.path} started",
            extra={
                "request_id": request_id,
                "client_ip": request.client.host if request.client else None,
            },
        )

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
            logger.error(
                f"[REQUEST] {request.method} {request.url.path} failed after {duration_ms}ms: {e}",
                extra={"request_id": request_id},
            )
            raise

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        logger.info(
            f"[REQUEST] {request.method} {request.url.path} -> {response.status_code} in {duration_ms}ms",
            extra={"request_id": request_id},
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
