"""Request id and access logging middleware."""

import logging
import secrets
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from alertntfy.telemetry.logging import bind

REQUEST_ID_HEADER = "X-Request-Id"

logger = logging.getLogger(__name__)


def generate_request_id() -> str:
    """Random 32 character hex id used to correlate log lines of one request."""

    return secrets.token_hex(16)


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()
        request.state.request_id = request_id

        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start

        response.headers[REQUEST_ID_HEADER] = request_id
        bind(logger, request_id=request_id).info(
            "%s %s status=%s duration=%.3fs",
            request.method,
            request.url.path,
            response.status_code,
            elapsed,
        )
        return response
