"""HTTP middleware for request ID propagation and correlation.

Every request/response pair carries a request ID so security events logged
during a rate limit check can be correlated with the request that caused
them.

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request, Response

from abuse_guard.core.config import settings
from abuse_guard.core.logging import clear_request_id, set_request_id

logger = logging.getLogger(__name__)

DURATION_HEADER = "X-Request-Duration-ms"


async def request_id_middleware(request: Request, call_next) -> Response:
    """Accept or generate a request ID and echo it in the response.

    Uses the incoming ``X-Request-ID`` header (name configurable via
    ``LOG_REQUEST_ID_HEADER``) or a new UUID, stores it in contextvars for
    the duration of the request, and adds the ID and the handling time in
    milliseconds to the response headers.
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or uuid.uuid4().hex
    set_request_id(request_id)

    started = time.perf_counter()
    try:
        response: Response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.debug(
            "request.completed",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
            },
        )
    finally:
        clear_request_id()

    response.headers[header_name] = request_id
    if DURATION_HEADER not in response.headers:
        response.headers[DURATION_HEADER] = f"{elapsed_ms:.2f}"
    return response
