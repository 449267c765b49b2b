# ============================================================================
# File: api/middleware.py
# ============================================================================

import time
import uuid
import logging
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
LATENCY_HEADER = "X-API-Latency-ms"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Tags every request with an id and reports its latency.

    The gateway's X-Request-ID is reused so upload and review calls can be
    traced across services. Uploads are logged at INFO with the caller id.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()

        response: Response = await call_next(request)

        latency_ms = int((time.perf_counter() - started) * 1000)
        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers[LATENCY_HEADER] = str(latency_ms)

        caller = request.headers.get("X-User-Id", "anonymous")
        message = (
            f"[{request_id}] {caller} {request.method} {request.url.path} "
            f"-> {response.status_code} ({latency_ms} ms)"
        )
        if request.method == "POST" and request.url.path == "/reports":
            logger.info(message)
        else:
            logger.debug(message)
        return response
