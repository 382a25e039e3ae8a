"""
Correlation ID Middleware

Tags every request with a correlation id and logs its outcome.
"""

import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from ...utils.logger import set_correlation_id, get_logger
from ...utils.idgen import generate_correlation_id

logger = get_logger(__name__)

HEADER = "X-Correlation-Id"


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Reuse the caller's X-Correlation-Id or mint one, expose it to the
    logging context, and echo it on the response.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        correlation_id = request.headers.get(HEADER) or generate_correlation_id()
        set_correlation_id(correlation_id)

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 1)

        response.headers[HEADER] = correlation_id
        logger.debug(
            f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms} ms)",
            extra={"path": request.url.path, "status_code": response.status_code, "duration_ms": elapsed_ms}
        )
        return response
